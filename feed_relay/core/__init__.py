"""
Core modules for Feed Relay.

This package contains the relay engine: protocol session, feed poller,
console command dispatch and the coordinator that runs them together.
"""
