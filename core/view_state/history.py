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
Navigation history capability.

The synchronizer only talks to the host through this narrow interface:
read the current location, replace or push a history entry, and listen for
back/forward navigation.
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger("prefsync.view_state.history")

HistoryState = Optional[Dict[str, Any]]
NavigationListener = Callable[[HistoryState], None]


class LocationHistory(Protocol):
    """Host navigation history."""

    def current_url(self) -> str:
        ...

    def replace_state(self, state: HistoryState, url: str) -> None:
        ...

    def push_state(self, state: HistoryState, url: str) -> None:
        ...

    def subscribe(self, listener: NavigationListener) -> Callable[[], None]:
        ...


class InMemoryLocationHistory:
    """
    History stack kept in memory.

    Used by headless hosts such as the command line and by tests.
    Navigating with back(), forward() or go() notifies listeners with the
    state object of the entry that became current.
    """

    def __init__(self, url: str = "/calendar", state: HistoryState = None):
        self._entries: List[Tuple[HistoryState, str]] = [(copy.deepcopy(state), url)]
        self._index = 0
        self._listeners: List[NavigationListener] = []

    def current_url(self) -> str:
        return self._entries[self._index][1]

    def current_state(self) -> HistoryState:
        return copy.deepcopy(self._entries[self._index][0])

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    def replace_state(self, state: HistoryState, url: str) -> None:
        self._entries[self._index] = (copy.deepcopy(state), url)

    def push_state(self, state: HistoryState, url: str) -> None:
        # Pushing drops every entry ahead of the current one
        del self._entries[self._index + 1:]
        self._entries.append((copy.deepcopy(state), url))
        self._index = len(self._entries) - 1

    def go(self, delta: int) -> bool:
        """
        Move through history and notify listeners.

        Returns:
            False if the target entry does not exist
        """
        target = self._index + delta
        if delta == 0 or not (0 <= target < len(self._entries)):
            return False

        self._index = target
        state = self.current_state()
        logger.debug(f"Navigated to history entry {target}: {self.current_url()}")
        for listener in list(self._listeners):
            listener(copy.deepcopy(state))
        return True

    def back(self) -> bool:
        return self.go(-1)

    def forward(self) -> bool:
        return self.go(1)

    def subscribe(self, listener: NavigationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
