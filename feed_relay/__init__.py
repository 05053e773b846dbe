"""
Feed Relay - relays new posts from a polled feed into an IRC channel.
"""

__version__ = "0.1.0"
