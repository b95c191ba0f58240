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
Base manager class for PrefSync.

Provides common functionality and patterns for the stateful managers.
"""

import logging
from typing import Any, Dict, Optional

from PySide6.QtCore import QObject


class BaseManager(QObject):
    """
    Base class for the preference store and the view state synchronizer.

    Provides common initialization patterns, logging setup, and
    standardized status reporting.
    """

    def __init__(self, name: Optional[str] = None):
        """
        Initialize the base manager.

        Args:
            name: Optional name for the manager (used in logging)
        """
        super().__init__()
        self._name = name or self.__class__.__name__
        self._logger = logging.getLogger(f"prefsync.{self._name.lower()}")
        self._initialized = False

    @property
    def name(self) -> str:
        """Get the manager name."""
        return self._name

    @property
    def logger(self) -> logging.Logger:
        """Get the manager's logger."""
        return self._logger

    @property
    def is_initialized(self) -> bool:
        """Check if the manager is initialized."""
        return self._initialized

    def _mark_initialized(self) -> None:
        """Mark the manager as initialized."""
        if not self._initialized:
            self._initialized = True
            self._logger.info(f"{self._name} initialized successfully")

    def get_status(self) -> Dict[str, Any]:
        """
        Get the current status of the manager.

        Returns:
            Dictionary containing status information
        """
        return {
            "name": self._name,
            "initialized": self._initialized,
            "class": self.__class__.__name__,
        }
