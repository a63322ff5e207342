"""
Rate limiting package for the relay.

Holds the cooldown gate that spaces calls to the upstream API so the single
upstream account is never hammered.
"""
