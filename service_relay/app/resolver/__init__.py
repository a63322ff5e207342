"""
User resolution package: search, exact match, profile fetch, classification.
"""
