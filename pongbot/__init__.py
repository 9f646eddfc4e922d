"""
pongbot: answers on-chain Ping() events with a single pong() each.
"""

__version__ = "0.3.0"
