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
Calendar preference store.

Owns the canonical preference tree and mediates all persistence: every
mutation is written synchronously to the local cache, and a debounced,
best-effort write is sent to the remote store when auto save is enabled.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, Mapping, Optional, Set, Union

from PySide6.QtCore import Signal

from config.constants import REMOTE_WRITE_DEBOUNCE_MS
from core.base_manager import BaseManager
from core.preferences import codec
from core.preferences.backends import LocalCacheBackend, RemotePreferenceBackend, RemoteSession
from core.preferences.defaults import DEFAULT_PREFERENCES, default_preferences
from core.preferences.exceptions import RemoteSyncError, StorageReadError
from utils import tree_paths
from utils.scheduler import AsyncioTaskScheduler, Debouncer, TaskScheduler


class PreferenceStore(BaseManager):
    """
    Single source of truth for durable calendar preferences.

    Provides:
    - Dot-path reads and writes over the preference tree
    - Synchronous local cache persistence on every mutation
    - Debounced, coalesced remote writes (one in flight at a time)
    - Change notifications via Qt signals
    """

    # Emitted with a copy of the tree after every mutation and remote merge
    preferences_changed = Signal(object)

    # Emitted with a copy of the tree after load() read the local cache
    preferences_loaded = Signal(object)

    # Emitted once the remote fetch of the current load settles (True if it merged)
    remote_load_finished = Signal(bool)

    def __init__(
        self,
        local_backend: LocalCacheBackend,
        remote_backend: Optional[RemotePreferenceBackend] = None,
        scheduler: Optional[TaskScheduler] = None,
        remote_debounce_ms: int = REMOTE_WRITE_DEBOUNCE_MS,
    ):
        """
        Initialize the preference store.

        Args:
            local_backend: Synchronous local cache
            remote_backend: Optional remote preference store
            scheduler: Scheduler driving the remote write debounce
            remote_debounce_ms: Quiet period before a remote write
        """
        super().__init__("PreferenceStore")
        self._local = local_backend
        self._remote = remote_backend
        self._schema = DEFAULT_PREFERENCES
        self._tree: Dict[str, Any] = default_preferences()

        self._user_id: Optional[str] = None
        self._session: Optional[RemoteSession] = None
        self._is_loading = False
        self._load_generation = 0

        self._remote_tasks: Set[asyncio.Task] = set()
        self._remote_write_task: Optional[asyncio.Task] = None
        self._remote_write_requested = False
        self._remote_debouncer = Debouncer(
            scheduler or AsyncioTaskScheduler(),
            remote_debounce_ms,
            self._start_remote_write,
            name="remote preference write",
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def session(self) -> Optional[RemoteSession]:
        return self._session

    @property
    def remote_backend(self) -> Optional[RemotePreferenceBackend]:
        return self._remote

    @property
    def storage_key(self) -> str:
        return self._local.storage_key(self._user_id)

    @property
    def is_loading(self) -> bool:
        """True while a remote fetch started by load() is outstanding."""
        return self._is_loading

    @property
    def remote_write_pending(self) -> bool:
        return self._remote_debouncer.is_pending

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(
        self, user_id: Optional[str], session: Optional[RemoteSession] = None
    ) -> Dict[str, Any]:
        """
        Load preferences for a user.

        The local cache is read synchronously and merged over the defaults.
        When a session is given, the remote store is fetched in the
        background and merged over the current tree once it answers.

        Args:
            user_id: User identity, None for the anonymous guest
            session: Authenticated session enabling remote sync

        Returns:
            Copy of the tree derived from the local cache
        """
        if self._remote_debouncer.is_pending and user_id != self._user_id:
            # Send the previous user's pending write before switching
            self._remote_debouncer.flush()

        self._user_id = user_id
        self._session = session
        self._load_generation += 1

        try:
            cached = self._local.read(user_id)
        except StorageReadError as e:
            self.logger.warning(f"Ignoring unreadable preference cache: {e}")
            cached = None

        self._tree = tree_paths.merge_over(default_preferences(), cached or {}, self._schema)
        self.logger.info(
            f"Loaded preferences for {self.storage_key} "
            f"({'cached' if cached else 'defaults'})"
        )
        self._mark_initialized()
        self.preferences_loaded.emit(self.get_all())

        if session is not None and self._remote is not None:
            self._is_loading = True
            task = self._spawn(
                self._fetch_remote(self._load_generation, session), "remote preference fetch"
            )
            if task is None:
                self._is_loading = False

        return self.get_all()

    async def _fetch_remote(self, generation: int, session: RemoteSession) -> None:
        remote_tree: Optional[Dict[str, Any]] = None
        try:
            remote_tree = await self._remote.fetch(session)
        except RemoteSyncError as e:
            self.logger.warning(f"Keeping cached preferences: {e}")
        except asyncio.CancelledError:
            if generation == self._load_generation:
                self._is_loading = False
            raise

        if generation != self._load_generation:
            self.logger.debug("Discarding remote preferences from a superseded load")
            return

        self._is_loading = False
        if remote_tree is not None:
            self._tree = tree_paths.merge_over(self._tree, remote_tree, self._schema)
            self.logger.info(f"Merged {len(remote_tree)} remote preference keys")
            self._write_local()
            self._emit_changed()
        self.remote_load_finished.emit(remote_tree is not None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a preference value by dot path.

        Args:
            path: Preference path (e.g. "workingHours.start")
            default: Value returned when any segment is absent

        Returns:
            Copy of the stored value, or default
        """
        if not tree_paths.has_path(self._tree, path):
            return default
        return tree_paths.clone_tree(tree_paths.get_path(self._tree, path))

    def has(self, path: str) -> bool:
        return tree_paths.has_path(self._tree, path)

    def get_all(self) -> Dict[str, Any]:
        """Return a deep copy of the whole preference tree."""
        return tree_paths.clone_tree(self._tree)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """Replace one top-level preference."""
        if not isinstance(key, str) or not key:
            raise ValueError(f"Invalid preference key: {key!r}")
        self._tree[key] = tree_paths.clone_tree(value)
        self._after_mutation(f"set {key}")

    def set_path(self, path: str, value: Any) -> None:
        """
        Set a nested preference, creating intermediate groups on demand.

        Sibling keys along the path are left untouched.
        """
        tree_paths.set_path(self._tree, path, tree_paths.clone_tree(value))
        self._after_mutation(f"set {path}")

    def set_many(self, updates: Mapping[str, Any]) -> None:
        """Shallow-merge several top-level preferences in one persistence cycle."""
        if not updates:
            return
        for key in updates:
            if not isinstance(key, str) or not key:
                raise ValueError(f"Invalid preference key: {key!r}")
        for key, value in updates.items():
            self._tree[key] = tree_paths.clone_tree(value)
        self._after_mutation(f"update {', '.join(updates)}")

    def reset(self) -> None:
        """Replace the tree with the defaults and persist it."""
        self._tree = default_preferences()
        self._after_mutation("reset to defaults")

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_preferences(self, now: Optional[datetime] = None) -> codec.PreferenceBundle:
        """Export the current tree as a downloadable bundle."""
        return codec.export_preferences(self._tree, now)

    def import_preferences(self, contents: Union[str, bytes]) -> Dict[str, Any]:
        """
        Replace the whole tree with an imported preferences file.

        Raises:
            InvalidFormatError: If the contents are malformed; the store
                is left untouched
        """
        imported = codec.import_preferences(contents)
        self._tree = tree_paths.merge_over(default_preferences(), imported, self._schema)
        self._after_mutation("import")
        return self.get_all()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        """
        Call listener with the new tree after every change.

        Returns:
            Function that removes the listener
        """
        self.preferences_changed.connect(listener)
        connected = True

        def unsubscribe() -> None:
            nonlocal connected
            if not connected:
                return
            connected = False
            try:
                self.preferences_changed.disconnect(listener)
            except (RuntimeError, TypeError) as e:
                self.logger.debug(f"Listener already disconnected: {e}")

        return unsubscribe

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _after_mutation(self, description: str) -> None:
        self.logger.debug(f"Preferences changed: {description}")
        self._write_local()
        self._emit_changed()
        self._schedule_remote_write()

    def _emit_changed(self) -> None:
        self.preferences_changed.emit(self.get_all())

    def _write_local(self) -> None:
        try:
            self._local.write(self._user_id, self._tree)
        except OSError as e:
            self.logger.error(f"Failed to write preference cache {self.storage_key}: {e}")

    def _remote_sync_enabled(self) -> bool:
        return (
            self._session is not None
            and self._remote is not None
            and bool(self._tree.get("autoSave"))
            and bool(self._tree.get("syncAcrossDevices"))
        )

    def _schedule_remote_write(self) -> None:
        if not self._remote_sync_enabled():
            self._remote_debouncer.cancel()
            return
        try:
            self._remote_debouncer.trigger()
        except RuntimeError as e:
            self.logger.warning(f"Cannot schedule remote preference write: {e}")

    def _start_remote_write(self) -> None:
        if self._remote_write_task is not None and not self._remote_write_task.done():
            # Fold into a single follow-up carrying the latest tree
            self._remote_write_requested = True
            return
        if self._session is None or self._remote is None:
            return
        # The payload is the tree at the moment the timer fires
        self._remote_write_task = self._spawn(
            self._write_remote(self._session, self.get_all()), "remote preference write"
        )

    async def _write_remote(self, session: RemoteSession, tree: Dict[str, Any]) -> None:
        while True:
            self._remote_write_requested = False
            try:
                await self._remote.save(session, tree)
            except RemoteSyncError as e:
                self.logger.warning(f"Remote preference write failed, keeping local copy: {e}")

            if not self._remote_write_requested or self._session is None:
                return
            session, tree = self._session, self.get_all()

    def _spawn(self, coro: Coroutine, description: str) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self.logger.warning(f"No running event loop, skipping {description}")
            return None

        task = loop.create_task(coro)
        self._remote_tasks.add(task)
        task.add_done_callback(self._remote_tasks.discard)
        return task

    async def drain(self) -> None:
        """Send any pending remote write now and wait for remote work to finish."""
        self._remote_debouncer.flush()
        while True:
            pending = [task for task in self._remote_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Cancel the pending remote write timer."""
        self._remote_debouncer.cancel()
        self.logger.debug(f"Closed preference store for {self.storage_key}")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "storage_key": self.storage_key,
                "remote_sync_enabled": self._remote_sync_enabled(),
                "remote_write_pending": self.remote_write_pending,
                "is_loading": self._is_loading,
            }
        )
        return status
