# src/learning_companion/errors.py

"""
Error taxonomy.

- ValidationError: bad user input, rejected before any state is touched.
- NetworkError: transient remote failure; the sync layer turns it into a queued retry.
- FormatError: malformed snapshot/backup data; the import is rejected as a whole.
- InvalidTokenError: share link invalid or expired (cause is only logged).
"""

from __future__ import annotations


class CompanionError(Exception):
    """Base class for all application errors."""


class ValidationError(CompanionError, ValueError):
    pass


class NetworkError(CompanionError):
    pass


class FormatError(CompanionError, ValueError):
    pass


class InvalidTokenError(CompanionError):
    def __init__(self, message: str = "link invalid or expired") -> None:
        super().__init__(message)
