"""
Upstream session package.
"""
