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
View state data models.

Defines the transient record of what the calendar surface is showing.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional


class ViewMode(Enum):
    """Calendar view modes."""

    MONTH = "month"
    WEEK = "week"
    DAY = "day"
    AGENDA = "agenda"

    @classmethod
    def parse(cls, value: Any) -> Optional["ViewMode"]:
        """Return the view mode for a token, or None if it is not recognised."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class SyncPhase(Enum):
    """Lifecycle of the view state synchronizer."""

    UNSET = "unset"
    RESTORING = "restoring"
    SYNCED = "synced"


@dataclass
class ViewState:
    """
    What the calendar is currently showing.

    Attributes:
        view_mode: Active view mode
        focused_date: Date the view is centred on
        active_filters: Ad-hoc filter criteria
    """

    view_mode: ViewMode
    focused_date: date
    active_filters: Dict[str, Any] = field(default_factory=dict)

    def to_history_state(self, include_filters: bool = True) -> Dict[str, Any]:
        """Return the payload stored with a navigation history entry."""
        return {
            "view": self.view_mode.value,
            "date": self.focused_date.isoformat(),
            "filters": dict(self.active_filters) if include_filters else {},
        }
