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
Default calendar preference schema.

Every key defined here is guaranteed to be present in the tree exposed by
the preference store.
"""

from types import MappingProxyType
from typing import Any, Dict, Mapping

from config.constants import DEFAULT_VIEW_MODE
from utils.tree_paths import clone_tree

_DEFAULT_PREFERENCES: Dict[str, Any] = {
    # View preferences
    "defaultView": DEFAULT_VIEW_MODE,
    "lastView": DEFAULT_VIEW_MODE,
    "startOfWeek": 0,  # 0 = Sunday, 1 = Monday
    "timeFormat": "12h",
    "dateFormat": "MM/dd/yyyy",
    # Display preferences
    "showWeekends": True,
    "showWeekNumbers": False,
    "compactMode": False,
    "showTaskCount": True,
    "showTaskPriority": True,
    "showTaskStatus": True,
    # Task preferences
    "defaultTaskDuration": 60,  # minutes
    "defaultTaskPriority": "medium",
    "autoScheduleTime": "09:00",
    "taskOverlapHandling": "stack",
    # Notification preferences
    "enableNotifications": True,
    "notificationSound": True,
    "reminderTimes": [15, 60, 1440],  # minutes before due date
    "quietHours": {
        "enabled": False,
        "start": "22:00",
        "end": "08:00",
    },
    # Filter preferences
    "defaultFilters": {},
    "saveFilters": True,
    "lastFilters": {},
    # Theme preferences
    "theme": "system",
    "colorScheme": "default",
    "fontSize": "medium",
    # Advanced preferences
    "enableKeyboardShortcuts": True,
    "enableDragAndDrop": True,
    "enableQuickEdit": True,
    "autoSave": True,
    "syncAcrossDevices": True,
    # Calendar integration
    "showHolidays": True,
    "holidayRegion": "US",
    "workingHours": {
        "enabled": True,
        "start": "09:00",
        "end": "17:00",
        "workingDays": [1, 2, 3, 4, 5],
    },
    # Performance preferences
    "lazyLoading": True,
    "cacheSize": 50,
    "prefetchDistance": 2,  # months
}

DEFAULT_PREFERENCES: Mapping[str, Any] = MappingProxyType(_DEFAULT_PREFERENCES)


def default_preferences() -> Dict[str, Any]:
    """Return a fresh, mutable copy of the default preference tree."""
    return clone_tree(_DEFAULT_PREFERENCES)
