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
"""Time utilities for PrefSync."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

logger = logging.getLogger("prefsync.utils.time_utils")


def now_utc() -> datetime:
    """Get current datetime with UTC timezone."""
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    """Get current datetime in system local timezone (aware)."""
    return now_utc().astimezone()


def current_iso_date(now: Optional[datetime] = None) -> str:
    """Return the local calendar date as YYYY-MM-DD."""
    return (now or now_local()).date().isoformat()


def parse_calendar_date(value: Any) -> Optional[date]:
    """
    Parse a calendar date from an ISO date or datetime string.

    Accepts "2024-03-01" as well as full timestamps such as
    "2024-03-01T10:00:00.000Z". Aware timestamps are converted to local
    time before the date is taken.

    Args:
        value: ISO string, date or datetime

    Returns:
        The parsed date, or None if the value is not a valid date
    """
    if isinstance(value, datetime):
        return value.astimezone().date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass

    try:
        # Handle 'Z' suffix which fromisoformat rejects on older interpreters
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Failed to parse calendar date: %s", value)
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def days_between(first: date, second: date) -> int:
    """Return the absolute number of days between two dates."""
    return abs((first - second).days)
