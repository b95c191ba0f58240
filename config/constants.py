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
Shared constants for PrefSync.

This module contains constants used across multiple modules to avoid
hardcoded values throughout the codebase.
"""

# ============================================================================
# Storage Constants
# ============================================================================

# Local cache key parts: <domain>_<field>_<user>
STORAGE_DOMAIN = "calendar"
STORAGE_FIELD = "preferences"
ANONYMOUS_USER_ID = "anonymous"

# ============================================================================
# Synchronization Constants
# ============================================================================

REMOTE_WRITE_DEBOUNCE_MS = 1000
VIEW_STATE_DEBOUNCE_MS = 500
LAST_DATE_VALIDITY_DAYS = 30

# Upper bound accepted by configuration validation (10 minutes)
MAX_DEBOUNCE_MS = 600_000

# ============================================================================
# Remote Store Constants
# ============================================================================

DEFAULT_PREFERENCES_ENDPOINT = "/api/user/calendar-preferences"

# ============================================================================
# Calendar View Constants
# ============================================================================

DEFAULT_VIEW_MODE = "month"

# Shareable location query parameters
LOCATION_PARAM_VIEW = "view"
LOCATION_PARAM_DATE = "date"
LOCATION_PARAM_FILTERS = "filters"

# Key of the history state object written for calendar entries
HISTORY_STATE_KEY = "calendarView"

# ============================================================================
# Import / Export Constants
# ============================================================================

EXPORT_FILENAME_PREFIX = "calendar-preferences"
EXPORT_FILE_EXTENSION = "json"
EXPORT_MEDIA_TYPE = "application/json"

# ============================================================================
# Logging Constants
# ============================================================================

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_FILE_BACKUP_COUNT = 3
