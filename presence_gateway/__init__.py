"""
Presence Gateway.

Real-time presence relay: clients connect over a WebSocket, JOIN a room
under a display name, and are told who joins, leaves, and is online.
"""

__version__ = "1.0.0"
