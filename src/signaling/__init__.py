"""WebRTC signaling relay.

Assigns ids to connecting peers, relays offers, answers and candidates
between them, and sanitizes relayed offers before forwarding.
"""

__version__ = "0.1.0"
