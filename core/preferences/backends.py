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
Persistence backends for calendar preferences.

The local cache backend is synchronous and keyed by user identity. The
remote backend is asynchronous, best-effort and keyed by the authenticated
session.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from config.constants import (
    ANONYMOUS_USER_ID,
    DEFAULT_PREFERENCES_ENDPOINT,
    STORAGE_DOMAIN,
    STORAGE_FIELD,
)
from core.preferences.exceptions import RemoteSyncError, StorageReadError
from data.storage.key_value import KeyValueStore
from utils.http_client import AsyncRetryableHttpClient

logger = logging.getLogger("prefsync.preferences.backends")


def build_storage_key(
    user_id: Optional[str],
    domain: str = STORAGE_DOMAIN,
    field: str = STORAGE_FIELD,
) -> str:
    """Return the cache key <domain>_<field>_<userId|anonymous>."""
    identity = str(user_id) if user_id else ANONYMOUS_USER_ID
    return f"{domain}_{field}_{identity}"


class LocalCacheBackend:
    """Synchronous JSON cache of preference trees, one entry per user."""

    def __init__(
        self,
        store: KeyValueStore,
        domain: str = STORAGE_DOMAIN,
        field: str = STORAGE_FIELD,
    ):
        self._store = store
        self.domain = domain
        self.field = field

    def storage_key(self, user_id: Optional[str]) -> str:
        return build_storage_key(user_id, self.domain, self.field)

    def read(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Read the cached tree for a user.

        Returns:
            The cached tree, or None when nothing is cached

        Raises:
            StorageReadError: If the cached value cannot be read or decoded
        """
        key = self.storage_key(user_id)
        try:
            raw = self._store.get(key)
        except (OSError, UnicodeDecodeError) as e:
            raise StorageReadError(key, str(e)) from e

        if raw is None:
            return None

        try:
            tree = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageReadError(key, f"invalid JSON ({e.msg})") from e

        if not isinstance(tree, dict):
            raise StorageReadError(key, f"expected an object, got {type(tree).__name__}")

        return tree

    def write(self, user_id: Optional[str], tree: Mapping[str, Any]) -> None:
        """
        Write the tree for a user.

        Raises:
            OSError: If the underlying store cannot be written
        """
        self._store.set(self.storage_key(user_id), json.dumps(tree, ensure_ascii=False))

    def clear(self, user_id: Optional[str]) -> None:
        self._store.remove(self.storage_key(user_id))


@dataclass(frozen=True)
class RemoteSession:
    """Authenticated session used for remote preference calls."""

    user_id: str
    token: str

    def auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    def __repr__(self) -> str:
        return f"RemoteSession(user_id={self.user_id!r}, token=***)"


class RemotePreferenceBackend:
    """
    Server-side preference store reached over HTTP.

    GET <endpoint> returns a JSON preference (sub)tree and PUT <endpoint>
    accepts a full tree. Every failure is reported as RemoteSyncError.
    """

    def __init__(
        self,
        client: AsyncRetryableHttpClient,
        endpoint: str = DEFAULT_PREFERENCES_ENDPOINT,
    ):
        """
        Initialize the remote backend.

        Args:
            client: HTTP client, usually created with the server base URL
            endpoint: Preferences endpoint path or absolute URL
        """
        self._client = client
        self.endpoint = endpoint

    async def fetch(self, session: RemoteSession) -> Dict[str, Any]:
        """
        Fetch the stored preferences for the session's user.

        Raises:
            RemoteSyncError: On transport errors, non-2xx status or a body
                that is not a JSON object
        """
        try:
            response = await self._client.get(self.endpoint, headers=session.auth_headers())
        except httpx.HTTPStatusError as e:
            raise RemoteSyncError(
                "fetch", f"HTTP {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise RemoteSyncError("fetch", f"{type(e).__name__}: {e}") from e

        try:
            tree = response.json()
        except ValueError as e:
            raise RemoteSyncError("fetch", "response is not valid JSON", response.status_code) from e

        if not isinstance(tree, dict):
            raise RemoteSyncError(
                "fetch",
                f"expected an object, got {type(tree).__name__}",
                response.status_code,
            )

        logger.debug(f"Fetched {len(tree)} remote preference keys")
        return tree

    async def save(self, session: RemoteSession, tree: Mapping[str, Any]) -> None:
        """
        Replace the stored preferences for the session's user.

        Raises:
            RemoteSyncError: On transport errors or non-2xx status
        """
        try:
            await self._client.put(
                self.endpoint,
                headers=session.auth_headers(),
                content=json.dumps(tree, ensure_ascii=False).encode("utf-8"),
            )
        except httpx.HTTPStatusError as e:
            raise RemoteSyncError(
                "write", f"HTTP {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise RemoteSyncError("write", f"{type(e).__name__}: {e}") from e

        logger.debug("Saved preferences to remote store")

    async def close(self) -> None:
        await self._client.close()
