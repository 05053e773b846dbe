"""
Feed sources the relay can poll.
"""

from .timeline import TimelineClient, TransientFetchError

__all__ = ["TimelineClient", "TransientFetchError"]
