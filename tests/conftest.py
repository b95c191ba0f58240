# SPDX-License-Identifier: Apache-2.0
"""
Pytest configuration for PrefSync tests.
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, List

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QCoreApplication  # noqa: E402


class ManualHandle:
    """Handle for a callback registered with ManualScheduler."""

    def __init__(self, due_ms: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by a fake clock advanced from the test."""

    def __init__(self):
        self.now_ms = 0
        self.handles: List[ManualHandle] = []

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now_ms + delay_ms, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, delay_ms: int) -> int:
        """Move the clock forward and run every callback that became due."""
        target = self.now_ms + delay_ms
        fired = 0
        while True:
            due = [h for h in self.pending if h.due_ms <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due_ms)
            self.now_ms = handle.due_ms
            handle.cancelled = True
            handle.callback()
            fired += 1
        self.now_ms = target
        return fired


@pytest.fixture(scope="session")
def qapp():
    """Create QCoreApplication instance for signal delivery."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv[:1])
    yield app


@pytest.fixture
def scheduler():
    """Provide a manually advanced scheduler."""
    return ManualScheduler()


@pytest.fixture
def fixed_now():
    """Fixed local 'now' used by date-sensitive tests."""
    return datetime(2024, 3, 10, 9, 30)


@pytest.fixture
def clock(fixed_now):
    """Clock callable returning the fixed 'now'."""
    return lambda: fixed_now
