# SPDX-License-Identifier: Apache-2.0
"""
Exceptions for calendar view state.
"""


class ViewStateError(Exception):
    """Base exception for view state operations."""

    pass


class FilterDecodeError(ViewStateError):
    """Raised when the filter payload of a shareable location is malformed."""

    def __init__(self, payload: str, reason: str):
        super().__init__(f"Could not decode location filters: {reason}")
        self.payload = payload
        self.reason = reason
