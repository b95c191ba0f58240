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
Configuration management for PrefSync.

Handles loading, validation, and saving of application configuration.
"""

import json
import logging
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict

from config.constants import MAX_DEBOUNCE_MS
from utils.tree_paths import clone_tree, get_path, merge_over, set_path


APP_DIR_NAME = ".prefsync"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.json"


def get_app_dir() -> Path:
    """Return the root directory for PrefSync user data."""
    return Path.home() / APP_DIR_NAME


logger = logging.getLogger("prefsync.config")


@lru_cache(maxsize=1)
def get_default_config_version() -> str:
    """Return the version defined in the default config."""
    try:
        with open(DEFAULT_CONFIG_PATH, "r", encoding="utf-8") as config_file:
            data = json.load(config_file)
    except FileNotFoundError:
        logger.error("Default configuration file not found: %s", DEFAULT_CONFIG_PATH)
        return "0.0.0"
    except json.JSONDecodeError as exc:
        logger.error(
            "Invalid JSON in default configuration file %s: %s",
            DEFAULT_CONFIG_PATH,
            exc
        )
        return "0.0.0"

    version = data.get("version")
    if isinstance(version, str) and version.strip():
        return version.strip()

    logger.warning(
        "Default configuration missing valid 'version'; falling back to 0.0.0"
    )
    return "0.0.0"


class ConfigManager:
    """Manages application configuration with validation and persistence."""

    def __init__(self):
        """Initialize the configuration manager."""
        self.default_config_path = DEFAULT_CONFIG_PATH
        self.user_config_dir = get_app_dir()
        self.user_config_path = self.user_config_dir / "app_config.json"
        self._config: Dict[str, Any] = {}
        self._default_config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from user config merged over default config."""
        try:
            logger.info(
                f"Loading default configuration from "
                f"{self.default_config_path}"
            )
            with open(self.default_config_path, 'r', encoding='utf-8') as f:
                self._default_config = json.load(f)

            user_config: Dict[str, Any] = {}
            if self.user_config_path.exists():
                logger.info(
                    f"Loading user configuration from "
                    f"{self.user_config_path}"
                )
                with open(self.user_config_path, 'r', encoding='utf-8') as f:
                    user_config = json.load(f)

            self._config = merge_over(
                self._default_config, user_config, schema=self._default_config
            )

            # Validate the loaded configuration
            self._validate_config()
            logger.info("Configuration loaded and validated successfully")

        except FileNotFoundError as e:
            logger.error(f"Configuration file not found: {e}")
            raise
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file: {e}")
            raise

    def _validate_config(self) -> None:
        """Validate required configuration fields and types."""
        required_fields = {
            "version": str,
            "storage": dict,
            "remote": dict,
            "sync": dict,
            "logging": dict,
            "export": dict,
        }

        for field, expected_type in required_fields.items():
            if field not in self._config:
                raise ValueError(
                    f"Missing required configuration field: {field}"
                )
            if not isinstance(self._config[field], expected_type):
                raise TypeError(
                    f"Configuration field '{field}' must be of type "
                    f"{expected_type.__name__}, got "
                    f"{type(self._config[field]).__name__}"
                )

        self._validate_storage_config()
        self._validate_remote_config()
        self._validate_sync_config()

    def _validate_storage_config(self) -> None:
        """Validate local cache configuration."""
        storage_config = self._config["storage"]
        for field in ("domain", "field", "cache_dir"):
            value = storage_config.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(
                    f"storage.{field} must be a non-empty string"
                )

    def _validate_remote_config(self) -> None:
        """Validate remote preference store configuration."""
        remote_config = self._config["remote"]
        for field in ("base_url", "preferences_endpoint"):
            if not isinstance(remote_config.get(field), str):
                raise TypeError(f"remote.{field} must be a string")

        timeout = remote_config.get("timeout_seconds")
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise TypeError("remote.timeout_seconds must be a number")
        if timeout <= 0:
            raise ValueError("remote.timeout_seconds must be positive")

        max_retries = remote_config.get("max_retries")
        if isinstance(max_retries, bool) or not isinstance(max_retries, int):
            raise TypeError("remote.max_retries must be an integer")
        if max_retries < 0:
            raise ValueError("remote.max_retries must be a non-negative integer")

    def _validate_sync_config(self) -> None:
        """Validate debounce periods and the saved-date validity window."""
        sync_config = self._config["sync"]

        for field in ("remote_debounce_ms", "view_state_debounce_ms"):
            value = sync_config.get(field)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"sync.{field} must be an integer")
            if not (0 <= value <= MAX_DEBOUNCE_MS):
                raise ValueError(
                    f"sync.{field} must be between 0 and {MAX_DEBOUNCE_MS}"
                )

        validity_days = sync_config.get("last_date_validity_days")
        if isinstance(validity_days, bool) or not isinstance(validity_days, int):
            raise TypeError("sync.last_date_validity_days must be an integer")
        if validity_days < 0:
            raise ValueError(
                "sync.last_date_validity_days must be a non-negative integer"
            )

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by key.

        Supports nested keys using dot notation (e.g., "remote.base_url").

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key is not found

        Returns:
            Configuration value or default
        """
        return get_path(self._config, key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value by key.

        Supports nested keys using dot notation (e.g., "sync.remote_debounce_ms").

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        set_path(self._config, key, value)

    def get_path_setting(self, key: str) -> Path:
        """Return a configured directory with '~' expanded."""
        return Path(os.path.expanduser(str(self.get(key))))

    def save(self) -> None:
        """Save the current configuration to the user config file."""
        try:
            # Ensure the user config directory exists
            self.user_config_dir.mkdir(parents=True, exist_ok=True)

            # Validate before saving
            self._validate_config()

            with open(self.user_config_path, 'w', encoding='utf-8') as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)

            # Set secure file permissions (owner read/write only)
            try:
                os.chmod(self.user_config_path, 0o600)
                logger.debug("Set secure permissions for config file")
            except OSError as e:
                logger.warning(f"Could not set file permissions: {e}")

            logger.info(f"Configuration saved to {self.user_config_path}")

        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error saving configuration: {e}")
            raise

    def get_all(self) -> Dict[str, Any]:
        """
        Get the entire configuration dictionary.

        Returns:
            Complete configuration dictionary
        """
        return clone_tree(self._config)

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()

    def get_defaults(self) -> Mapping[str, Any]:
        """Return an immutable view of the default configuration."""
        return self._deep_freeze(self._default_config)

    @classmethod
    def _deep_freeze(cls, value: Any) -> Any:
        """Create an immutable representation of nested configuration data."""
        if isinstance(value, dict):
            frozen = {k: cls._deep_freeze(v) for k, v in value.items()}
            return MappingProxyType(frozen)
        if isinstance(value, list):
            return tuple(cls._deep_freeze(v) for v in value)
        return value
