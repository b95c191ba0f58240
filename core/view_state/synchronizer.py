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
View state synchronizer for the calendar surface.

Keeps the in-memory view state, the shareable location, navigation history
and the "last view" preferences consistent with each other.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from PySide6.QtCore import Signal

from config.constants import (
    HISTORY_STATE_KEY,
    LAST_DATE_VALIDITY_DAYS,
    VIEW_STATE_DEBOUNCE_MS,
)
from core.base_manager import BaseManager
from core.preferences.store import PreferenceStore
from core.view_state.exceptions import FilterDecodeError
from core.view_state.history import HistoryState, LocationHistory
from core.view_state.location import build_location, decode_filters, parse_location
from core.view_state.models import SyncPhase, ViewMode, ViewState
from utils.scheduler import AsyncioTaskScheduler, Debouncer, TaskScheduler
from utils.time_utils import days_between, now_local, parse_calendar_date

DateLike = Union[date, datetime, str]


class ViewStateSynchronizer(BaseManager):
    """
    Owns the calendar view state and keeps it in sync.

    On mount the view state is restored from the location first, then from
    the saved preferences, then from defaults. Every change rewrites the
    current history entry immediately and is persisted to the preference
    store after a quiet period. Back/forward navigation is adopted directly.
    """

    # Emitted with a copy of the view state whenever it changes
    view_state_changed = Signal(object)

    def __init__(
        self,
        store: PreferenceStore,
        history: LocationHistory,
        scheduler: Optional[TaskScheduler] = None,
        clock: Callable[[], datetime] = now_local,
        persist_delay_ms: int = VIEW_STATE_DEBOUNCE_MS,
        validity_days: int = LAST_DATE_VALIDITY_DAYS,
    ):
        """
        Initialize the synchronizer.

        Args:
            store: Preference store holding lastView/lastDate/lastFilters
            history: Host navigation history
            scheduler: Scheduler driving the persist debounce
            clock: Returns the current local datetime
            persist_delay_ms: Quiet period before persisting view state
            validity_days: Maximum age of a saved date that is restored
        """
        super().__init__("ViewStateSynchronizer")
        self._store = store
        self._history = history
        self._clock = clock
        self._validity_days = validity_days

        self._state: Optional[ViewState] = None
        self._phase = SyncPhase.UNSET
        self._unsubscribe_navigation: Optional[Callable[[], None]] = None
        self._waiting_for_store = False
        self._persist_debouncer = Debouncer(
            scheduler or AsyncioTaskScheduler(),
            persist_delay_ms,
            self._persist,
            name="view state persist",
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def view_state(self) -> Optional[ViewState]:
        """Copy of the current view state, None before mount."""
        if self._state is None:
            return None
        return ViewState(
            self._state.view_mode,
            self._state.focused_date,
            dict(self._state.active_filters),
        )

    @property
    def persist_pending(self) -> bool:
        return self._persist_debouncer.is_pending

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> ViewState:
        """
        Restore the view state and start synchronizing.

        Returns:
            The restored view state
        """
        if self._phase is not SyncPhase.UNSET:
            self.logger.warning("View state synchronizer is already mounted")
            return self.view_state

        self._phase = SyncPhase.RESTORING
        self._state = self._restore()
        self._unsubscribe_navigation = self._history.subscribe(self._on_navigation)
        self._mark_initialized()

        if self._store.is_loading:
            # Provisional state only; restore runs again once remote preferences settle
            self.logger.info("Remote preferences are loading, deferring view restore")
            self._store.remote_load_finished.connect(self._on_store_loaded)
            self._waiting_for_store = True
            self.view_state_changed.emit(self.view_state)
            return self.view_state

        self._finish_restore()
        return self.view_state

    def _on_store_loaded(self, merged: bool) -> None:
        self._stop_waiting_for_store()
        if self._phase is not SyncPhase.RESTORING:
            return
        self.logger.debug(f"Remote preferences settled (merged={merged}), restoring view")
        self._state = self._restore()
        self._finish_restore()

    def _stop_waiting_for_store(self) -> None:
        if not self._waiting_for_store:
            return
        self._waiting_for_store = False
        try:
            self._store.remote_load_finished.disconnect(self._on_store_loaded)
        except (RuntimeError, TypeError) as e:
            self.logger.debug(f"Store listener already disconnected: {e}")

    def _finish_restore(self) -> None:
        self._phase = SyncPhase.SYNCED
        # Stamp the entry we landed on so navigating back to it restores it
        self._write_location(force=True)
        self._schedule_persist()

        self.logger.info(
            f"Restored calendar view: {self._state.view_mode.value} "
            f"{self._state.focused_date.isoformat()}"
        )
        self.view_state_changed.emit(self.view_state)

    def unmount(self) -> None:
        """Stop listening to navigation and persist any pending change."""
        self._stop_waiting_for_store()
        if self._unsubscribe_navigation is not None:
            self._unsubscribe_navigation()
            self._unsubscribe_navigation = None
        self._persist_debouncer.flush()
        self._phase = SyncPhase.UNSET

    def flush(self) -> bool:
        """Persist a pending view state change now."""
        return self._persist_debouncer.flush()

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _today(self) -> date:
        return self._clock().date()

    def _save_filters_enabled(self) -> bool:
        return bool(self._store.get("saveFilters", False))

    def _restore(self) -> ViewState:
        save_filters = self._save_filters_enabled()
        view_mode: Optional[ViewMode] = None
        focused_date: Optional[date] = None
        filters: Optional[Dict[str, Any]] = None

        # 1. Shareable location
        params = parse_location(self._history.current_url())
        if params.view:
            view_mode = ViewMode.parse(params.view)
        if params.date:
            focused_date = parse_calendar_date(params.date)
        if params.filters and save_filters:
            try:
                filters = decode_filters(params.filters)
            except FilterDecodeError as e:
                self.logger.debug(f"Ignoring location filters: {e}")

        # 2. Saved preferences
        if view_mode is None:
            view_mode = ViewMode.parse(self._store.get("lastView"))
        if focused_date is None:
            focused_date = self._restore_last_date()
        if filters is None and save_filters:
            saved_filters = self._store.get("lastFilters")
            if isinstance(saved_filters, dict):
                filters = saved_filters

        # 3. Defaults
        return ViewState(
            view_mode=view_mode or ViewMode.MONTH,
            focused_date=focused_date or self._today(),
            active_filters=filters or {},
        )

    def _restore_last_date(self) -> Optional[date]:
        saved = parse_calendar_date(self._store.get("lastDate"))
        if saved is None:
            return None
        age = days_between(saved, self._today())
        if age > self._validity_days:
            self.logger.debug(f"Discarding saved date {saved.isoformat()} ({age} days old)")
            return None
        return saved

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_view_mode(self, view_mode: Union[ViewMode, str]) -> ViewState:
        return self.update(view_mode=view_mode)

    def set_focused_date(self, focused_date: DateLike) -> ViewState:
        return self.update(focused_date=focused_date)

    def set_filters(self, filters: Mapping[str, Any]) -> ViewState:
        return self.update(active_filters=filters)

    def update(
        self,
        view_mode: Optional[Union[ViewMode, str]] = None,
        focused_date: Optional[DateLike] = None,
        active_filters: Optional[Mapping[str, Any]] = None,
    ) -> ViewState:
        """
        Change one or more view state fields.

        The current history entry is replaced when the location changes,
        and the state is persisted after the quiet period.

        Raises:
            RuntimeError: If called before mount()
            ValueError: If a field value is invalid
        """
        self._apply(self._build_state(view_mode, focused_date, active_filters))
        return self.view_state

    def navigate_to(
        self,
        view_mode: Optional[Union[ViewMode, str]] = None,
        focused_date: Optional[DateLike] = None,
        active_filters: Optional[Mapping[str, Any]] = None,
    ) -> ViewState:
        """Like update(), but records a new history entry for the change."""
        self._apply(self._build_state(view_mode, focused_date, active_filters), push=True)
        return self.view_state

    def _build_state(
        self,
        view_mode: Optional[Union[ViewMode, str]],
        focused_date: Optional[DateLike],
        active_filters: Optional[Mapping[str, Any]],
    ) -> ViewState:
        if self._phase is SyncPhase.UNSET or self._state is None:
            raise RuntimeError("View state synchronizer is not mounted")

        new_mode = self._state.view_mode
        if view_mode is not None:
            new_mode = ViewMode.parse(view_mode)
            if new_mode is None:
                raise ValueError(f"Unknown view mode: {view_mode!r}")

        new_date = self._state.focused_date
        if focused_date is not None:
            new_date = parse_calendar_date(focused_date)
            if new_date is None:
                raise ValueError(f"Invalid calendar date: {focused_date!r}")

        new_filters = dict(self._state.active_filters)
        if active_filters is not None:
            if not isinstance(active_filters, Mapping):
                raise ValueError("Filters must be a mapping")
            new_filters = dict(active_filters)

        return ViewState(new_mode, new_date, new_filters)

    def _apply(self, new_state: ViewState, push: bool = False) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        self.view_state_changed.emit(self.view_state)
        self._write_location(push=push)
        self._schedule_persist()

    # ------------------------------------------------------------------
    # Location and history
    # ------------------------------------------------------------------

    def _history_state(self, save_filters: bool) -> Dict[str, Any]:
        return {HISTORY_STATE_KEY: self._state.to_history_state(include_filters=save_filters)}

    def _write_location(self, push: bool = False, force: bool = False) -> None:
        if self._phase is not SyncPhase.SYNCED or self._state is None:
            return

        save_filters = self._save_filters_enabled()
        current = self._history.current_url()
        target = build_location(current, self._state, include_filters=save_filters)

        if push:
            self._history.push_state(self._history_state(save_filters), target)
        elif force or target != current:
            self._history.replace_state(self._history_state(save_filters), target)
        else:
            return
        self.logger.debug(f"Location updated: {target}")

    def _on_navigation(self, state: HistoryState) -> None:
        if self._phase is not SyncPhase.SYNCED or self._state is None:
            return

        payload = state.get(HISTORY_STATE_KEY) if isinstance(state, dict) else None
        if not isinstance(payload, dict):
            self.logger.debug("Ignoring navigation without calendar view state")
            return

        view_mode = ViewMode.parse(payload.get("view"))
        focused_date = parse_calendar_date(payload.get("date"))
        filters = payload.get("filters")
        if not self._save_filters_enabled():
            filters = None

        self._apply(
            ViewState(
                view_mode or self._state.view_mode,
                focused_date or self._state.focused_date,
                dict(filters) if isinstance(filters, dict) else dict(self._state.active_filters),
            )
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule_persist(self) -> None:
        if self._phase is not SyncPhase.SYNCED:
            return
        try:
            self._persist_debouncer.trigger()
        except RuntimeError as e:
            self.logger.warning(f"Cannot schedule view state persistence: {e}")

    def _persist(self) -> None:
        if self._state is None:
            return

        updates: Dict[str, Any] = {
            "lastView": self._state.view_mode.value,
            "lastDate": self._state.focused_date.isoformat(),
        }
        if self._save_filters_enabled():
            updates["lastFilters"] = dict(self._state.active_filters)

        self._store.set_many(updates)
        self.logger.debug(f"Persisted view state: {', '.join(updates)}")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "phase": self._phase.value,
                "view_mode": self._state.view_mode.value if self._state else None,
                "persist_pending": self.persist_pending,
            }
        )
        return status
