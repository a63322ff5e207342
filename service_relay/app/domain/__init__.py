"""
Domain utilities for the relay.

Holds the error translator, the one place where failures become HTTP
status codes and bodies.
"""

from .error_translator import TranslatedError, translate_error

__all__ = [
    "TranslatedError",
    "translate_error",
]
