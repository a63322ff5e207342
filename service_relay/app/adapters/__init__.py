"""
Adapters package for the relay.

Contains the HTTP client for the VRChat web API. The adapter encapsulates:

- Base URL, User-Agent and request shapes
- Login handshake, TOTP and cookie persistence
- Typed errors for each failure cause (mapped to HTTP only by the
  error translator)

No retries happen here; every failure surfaces to the caller.
"""

from .vrchat_client import VRChatClient

__all__ = [
    "VRChatClient",
]
