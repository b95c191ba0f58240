# SPDX-License-Identifier: Apache-2.0
"""
Exceptions for calendar preferences.

Only InvalidFormatError is meant to reach the user; storage and remote
errors are absorbed by the preference store.
"""

from typing import Optional


class PreferenceError(Exception):
    """Base exception for preference operations."""

    pass


class StorageReadError(PreferenceError):
    """Raised when the local cache holds unreadable or corrupt data."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Could not read cached preferences '{key}': {reason}")
        self.key = key
        self.reason = reason


class RemoteSyncError(PreferenceError):
    """Raised when fetching from or writing to the remote store fails."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Remote preference {operation} failed: {message}")
        self.operation = operation
        self.status_code = status_code


class InvalidFormatError(PreferenceError):
    """Raised when an imported preferences file is malformed."""

    def __init__(self, message: str = "Invalid preferences file format"):
        super().__init__(message)
