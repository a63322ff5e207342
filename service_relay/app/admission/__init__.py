"""
Admission control package.

Decides, from static allow-lists only, whether a caller may reach the relay.
"""
