# SPDX-License-Identifier: Apache-2.0
#
# Copyright (c) 2024-2025 PrefSync Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Cancellable scheduled callbacks and debouncing.

Debounce timers are modelled as an explicit scheduler so that coalescing
behaviour can be driven deterministically.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol, Set

from PySide6.QtCore import QObject, QTimer

logger = logging.getLogger("prefsync.utils.scheduler")


class ScheduledHandle(Protocol):
    """Handle returned by a scheduler; cancelling it prevents the callback."""

    def cancel(self) -> None:
        ...


class TaskScheduler(Protocol):
    """Capability to run a callback once after a delay."""

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledHandle:
        ...


class AsyncioTaskScheduler:
    """
    Scheduler backed by the asyncio event loop.

    Uses the running loop at scheduling time unless a loop is given.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        """
        Run callback after delay_ms milliseconds.

        Raises:
            RuntimeError: If no loop was given and none is running
        """
        return self._get_loop().call_later(max(delay_ms, 0) / 1000.0, callback)


class QtTimerHandle:
    """Cancellable handle for a single-shot QTimer."""

    def __init__(self, timer: QTimer, active: Set[QTimer]):
        self._timer = timer
        self._active = active

    
    def is_active(self) -> bool:
        return self._timer in self._active

    def cancel(self) -> None:
        if self._timer not in self._active:
            return
        self._timer.stop()
        self._active.discard(self._timer)
        self._timer.deleteLater()


class QtTaskScheduler:
    """
    Scheduler backed by single-shot QTimers.

    Callbacks run on the Qt event loop of the scheduling thread, so a Qt
    application must be processing events for them to fire.
    """

    def __init__(self, parent: Optional[QObject] = None):
        self._parent = parent
        self._active: Set[QTimer] = set()

    
    def pending(self) -> int:
        return len(self._active)

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> QtTimerHandle:
        """Run callback after delay_ms milliseconds."""
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        self._active.add(timer)

        def on_timeout():
            if timer not in self._active:
                return
            self._active.discard(timer)
            timer.deleteLater()
            callback()

        timer.timeout.connect(on_timeout)
        timer.start(max(delay_ms, 0))
        return QtTimerHandle(timer, self._active)


class Debouncer:
    """
    Runs a callback once after a quiet period.

    Every trigger cancels the pending run and starts the quiet period again,
    so a burst of triggers produces exactly one run.
    """

    def __init__(
        self,
        scheduler: TaskScheduler,
        delay_ms: int,
        callback: Callable[[], None],
        name: str = "debouncer",
    ):
        self._scheduler = scheduler
        self._delay_ms = delay_ms
        self._callback = callback
        self._name = name
        self._handle: Optional[ScheduledHandle] = None

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @property
    def is_pending(self) -> bool:
        """Whether a run is scheduled and has not fired yet."""
        return self._handle is not None

    def trigger(self) -> None:
        """Restart the quiet period."""
        self.cancel()
        self._handle = self._scheduler.schedule(self._delay_ms, self._fire)
        logger.debug("%s scheduled in %sms", self._name, self._delay_ms)

    def cancel(self) -> None:
        """Cancel the pending run, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """
        Run the pending callback immediately.

        Returns:
            True if a pending run was executed
        """
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._callback()
