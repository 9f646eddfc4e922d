#!/usr/bin/env python3
"""
Safe Pong Responder Startup Script

This script helps you safely start the responder by:
1. Checking that .env file exists
2. Preparing state and log directories
3. Showing which network and contract will be used
4. Starting the responder with proper error handling
"""

import os
import sys
from pathlib import Path


def check_env_file():
    """Verify .env file exists and has a signing key."""
    env_file = Path('.env')

    if not env_file.exists():
        print("❌ ERROR: .env file not found")
        print("\nCreate .env file with:")
        print("  PONG_PRIVATE_KEY=0x...  (responding account)")
        print("  PONG_RPC_URL=https://... (optional, defaults to rpc.sepolia.org)")
        return False

    with open(env_file) as f:
        content = f.read()
        if 'PONG_PRIVATE_KEY' not in content and 'PRIVATE_KEY' not in content:
            print("❌ ERROR: Missing credentials in .env")
            print("  Need PONG_PRIVATE_KEY (or PRIVATE_KEY)")
            return False

    print("✅ .env file present and valid")
    return True


def check_state_directory():
    """Ensure the state file's directory exists."""
    from dotenv import load_dotenv
    load_dotenv()
    state_dir = Path(os.getenv('PONG_STATE_FILE', 'state/state.json')).parent
    state_dir.mkdir(parents=True, exist_ok=True)

    print(f"✅ State directory ready ({state_dir})")
    return True


def check_logs_directory():
    """Ensure logs directory exists."""
    logs_dir = Path('logs')
    logs_dir.mkdir(parents=True, exist_ok=True)

    print("✅ Logs directory ready")
    return True


def show_target():
    """Print the RPC endpoint and contract the responder will use."""
    from dotenv import load_dotenv
    load_dotenv()
    rpc_url = os.getenv('PONG_RPC_URL') or os.getenv('SEPOLIA_RPC_URL') or 'https://rpc.sepolia.org'
    contract = os.getenv('PONG_CONTRACT_ADDRESS', '0xa7f42ff7433cb268dd7d59be62b00c30ded28d3d')
    start = os.getenv('PONG_START_BLOCK') or 'current head (first run only)'

    print(f"\n🟡 RPC:      {rpc_url}")
    print(f"   Contract: {contract}")
    print(f"   Start:    {start}")


def preflight():
    print("\n" + "=" * 60)
    print("PRE-FLIGHT CHECKS")
    print("=" * 60)

    checks = [
        ("Environment file", check_env_file),
        ("State directory", check_state_directory),
        ("Logs directory", check_logs_directory),
    ]

    all_passed = True
    for name, check_func in checks:
        if not check_func():
            all_passed = False

    if not all_passed:
        print("\n❌ Pre-flight checks FAILED")
        print("Fix errors above and try again")
        return False

    print("\n✅ All pre-flight checks passed!")
    show_target()
    return True


def main():
    """Run pre-flight checks and start the responder."""
    if not preflight():
        sys.exit(1)

    print("\n✅ Starting responder...")
    from pongbot.main import cli
    cli()


if __name__ == '__main__':
    main()
