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
Key-value storage for the local preference cache.

Provides the synchronous get/set/remove capability used by the local cache
backend, with an in-memory implementation and a file-backed one.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, Union
from urllib.parse import quote

logger = logging.getLogger("prefsync.storage")


class KeyValueStore(Protocol):
    """Synchronous string key-value storage."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store, scoped to the current process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class FileKeyValueStore:
    """
    Stores each key in its own file under a base directory.

    Writes go to a temporary file that replaces the target atomically, and
    files are created with owner-only permissions.
    """

    def __init__(self, base_dir: Union[str, Path]):
        """
        Initialize the file store.

        Args:
            base_dir: Directory holding one file per key
        """
        self.base_dir = Path(base_dir).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._set_directory_permissions(self.base_dir)
        logger.debug(f"File key-value store initialized: {self.base_dir}")

    def _path_for(self, key: str) -> Path:
        if not key:
            raise ValueError("Storage key must be a non-empty string")
        return self.base_dir / f"{quote(key, safe='')}.json"

    def _set_directory_permissions(self, directory: Path):
        """Set secure directory permissions (owner read/write/execute only)."""
        try:
            os.chmod(directory, 0o700)
        except OSError as e:
            logger.warning(f"Could not set directory permissions for {directory}: {e}")

    def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under key.

        Returns:
            Stored text, or None when the key is absent

        Raises:
            OSError: If the file exists but cannot be read
            UnicodeDecodeError: If the file is not valid UTF-8
        """
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        """Write value under key, replacing any previous value atomically."""
        path = self._path_for(key)
        fd, temp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.chmod(temp_name, 0o600)
            os.replace(temp_name, path)
        except OSError:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug(f"Stored key {key} at {path}")

    def remove(self, key: str) -> None:
        """Delete the value stored under key, if present."""
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            pass
