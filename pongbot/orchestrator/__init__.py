"""
Orchestrator package - supervised restart loop around the engine.
"""

from pongbot.orchestrator.supervisor import Supervisor, SupervisorConfig

__all__ = [
    "Supervisor",
    "SupervisorConfig",
]
