# SPDX-License-Identifier: Apache-2.0
"""
Unit tests for ViewStateSynchronizer.

Tests restore priority, location rewriting, debounced persistence and
back/forward navigation.
"""

import asyncio
import json
from datetime import date
from urllib.parse import urlencode

import httpx
import pytest

from core.preferences.backends import LocalCacheBackend, RemotePreferenceBackend, RemoteSession
from core.preferences.store import PreferenceStore
from core.view_state.history import InMemoryLocationHistory
from core.view_state.location import decode_filters, encode_filters, parse_location
from core.view_state.models import SyncPhase, ViewMode, ViewState
from core.view_state.synchronizer import ViewStateSynchronizer
from data.storage.key_value import InMemoryKeyValueStore
from utils.http_client import AsyncRetryableHttpClient

TODAY = date(2024, 3, 10)


@pytest.fixture
def store(qapp, scheduler):
    """Create a loaded local-only preference store."""
    store = PreferenceStore(LocalCacheBackend(InMemoryKeyValueStore()), scheduler=scheduler)
    store.load("alice")
    return store


@pytest.fixture
def make_sync(store, scheduler, clock):
    """Factory creating a synchronizer for a starting location."""

    def factory(url="/calendar"):
        history = InMemoryLocationHistory(url)
        synchronizer = ViewStateSynchronizer(store, history, scheduler=scheduler, clock=clock)
        return synchronizer, history

    return factory


def _location(**params):
    return "/calendar?" + urlencode(params)


def _remote_store(kv, scheduler, handler):
    client = AsyncRetryableHttpClient(
        base_url="http://prefs.test", transport=httpx.MockTransport(handler)
    )
    return PreferenceStore(
        LocalCacheBackend(kv),
        remote_backend=RemotePreferenceBackend(client, "/api/user/calendar-preferences"),
        scheduler=scheduler,
    )


class TestRestore:
    """Test view state restore priority."""

    def test_defaults_when_nothing_saved(self, make_sync):
        synchronizer, history = make_sync()

        state = synchronizer.mount()

        assert state == ViewState(ViewMode.MONTH, TODAY, {})
        assert synchronizer.phase is SyncPhase.SYNCED
        assert history.current_url() == "/calendar?view=month&date=2024-03-10"
        assert history.length == 1

    def test_location_wins_over_preferences(self, store, make_sync):
        store.set_many({"lastView": "day", "lastDate": "2024-03-05"})
        synchronizer, history = make_sync("/calendar?view=week&date=2024-03-01")

        state = synchronizer.mount()

        assert state.view_mode is ViewMode.WEEK
        assert state.focused_date == date(2024, 3, 1)
        assert history.current_url() == "/calendar?view=week&date=2024-03-01"

    def test_preferences_used_when_location_is_empty(self, store, make_sync):
        store.set_many({"lastView": "agenda", "lastDate": "2024-03-05"})
        synchronizer, _ = make_sync()

        state = synchronizer.mount()

        assert state.view_mode is ViewMode.AGENDA
        assert state.focused_date == date(2024, 3, 5)

    def test_invalid_location_values_fall_back(self, store, make_sync):
        store.set_many({"lastView": "day", "lastDate": "2024-03-05"})
        synchronizer, history = make_sync("/calendar?view=year&date=someday")

        state = synchronizer.mount()

        assert state.view_mode is ViewMode.DAY
        assert state.focused_date == date(2024, 3, 5)
        assert history.current_url() == "/calendar?view=day&date=2024-03-05"

    @pytest.mark.parametrize(
        "saved, expected",
        [
            ("2024-02-29", date(2024, 2, 29)),
            ("2024-02-09", date(2024, 2, 9)),
            ("2024-02-08", TODAY),
            ("2024-04-10", TODAY),
            ("2024-02-29T10:00:00", date(2024, 2, 29)),
        ],
    )
    def test_saved_date_staleness(self, store, make_sync, saved, expected):
        store.set("lastDate", saved)
        synchronizer, _ = make_sync()

        assert synchronizer.mount().focused_date == expected

    def test_location_date_is_not_subject_to_staleness(self, make_sync):
        synchronizer, _ = make_sync("/calendar?date=2020-01-01")
        assert synchronizer.mount().focused_date == date(2020, 1, 1)

    def test_filters_from_location_when_enabled(self, store, make_sync):
        store.set("lastFilters", {"category": "home"})
        synchronizer, _ = make_sync(_location(filters=encode_filters({"category": "work"})))

        assert synchronizer.mount().active_filters == {"category": "work"}

    def test_filters_from_preferences_when_location_has_none(self, store, make_sync):
        store.set("lastFilters", {"category": "home"})
        synchronizer, history = make_sync()

        assert synchronizer.mount().active_filters == {"category": "home"}
        filters = parse_location(history.current_url()).filters
        assert decode_filters(filters) == {"category": "home"}

    def test_undecodable_location_filters_are_ignored(self, store, make_sync):
        store.set("lastFilters", {"category": "home"})
        synchronizer, _ = make_sync("/calendar?filters=%21%21%21")

        assert synchronizer.mount().active_filters == {"category": "home"}

    def test_filters_ignored_when_saving_filters_is_off(self, store, make_sync):
        store.set_many({"saveFilters": False, "lastFilters": {"category": "home"}})
        synchronizer, history = make_sync(
            _location(view="day", filters=encode_filters({"category": "work"}))
        )

        state = synchronizer.mount()

        assert state.active_filters == {}
        assert "filters" not in history.current_url()

    def test_history_entry_carries_view_state(self, make_sync):
        synchronizer, history = make_sync("/calendar?view=week&date=2024-03-01")
        synchronizer.mount()

        assert history.current_state() == {
            "calendarView": {"view": "week", "date": "2024-03-01", "filters": {}}
        }

    def test_mount_twice_is_ignored(self, make_sync):
        synchronizer, _ = make_sync()
        first = synchronizer.mount()
        assert synchronizer.mount() == first


class TestPersistence:
    """Test debounced persistence into the preference store."""

    def test_restored_state_is_persisted_after_quiet_period(self, store, make_sync, scheduler):
        synchronizer, _ = make_sync("/calendar?view=week&date=2024-03-01")
        synchronizer.mount()

        assert synchronizer.persist_pending
        assert store.get("lastView") == "month"

        scheduler.advance(500)

        assert store.get("lastView") == "week"
        assert store.get("lastDate") == "2024-03-01"

    def test_burst_of_changes_persists_once(self, store, make_sync, scheduler):
        synchronizer, _ = make_sync()
        synchronizer.mount()
        scheduler.advance(500)
        changes = []
        store.subscribe(changes.append)

        synchronizer.set_view_mode("week")
        scheduler.advance(200)
        synchronizer.set_focused_date(date(2024, 3, 12))
        scheduler.advance(200)
        synchronizer.set_view_mode(ViewMode.DAY)
        scheduler.advance(499)
        assert changes == []

        scheduler.advance(1)

        assert len(changes) == 1
        assert changes[0]["lastView"] == "day"
        assert changes[0]["lastDate"] == "2024-03-12"

    def test_filters_persisted_when_enabled(self, store, make_sync, scheduler):
        synchronizer, _ = make_sync()
        synchronizer.mount()

        synchronizer.set_filters({"category": "work"})
        scheduler.advance(500)

        assert store.get("lastFilters") == {"category": "work"}

    def test_filters_not_persisted_when_disabled(self, store, make_sync, scheduler):
        store.set_many({"saveFilters": False, "lastFilters": {"category": "home"}})
        synchronizer, history = make_sync()
        synchronizer.mount()

        synchronizer.set_filters({"category": "work"})
        scheduler.advance(500)

        assert store.get("lastFilters") == {"category": "home"}
        assert synchronizer.view_state.active_filters == {"category": "work"}
        assert "filters" not in history.current_url()

    def test_flush_persists_immediately(self, store, make_sync):
        synchronizer, _ = make_sync()
        synchronizer.mount()
        synchronizer.set_view_mode("agenda")

        assert synchronizer.flush() is True
        assert store.get("lastView") == "agenda"
        assert synchronizer.flush() is False

    def test_unmount_persists_pending_change_and_stops_listening(self, store, make_sync):
        synchronizer, history = make_sync()
        synchronizer.mount()
        synchronizer.navigate_to(view_mode="week")

        synchronizer.unmount()
        history.back()

        assert store.get("lastView") == "week"
        assert synchronizer.phase is SyncPhase.UNSET
        assert synchronizer.view_state.view_mode is ViewMode.WEEK


class TestLocationSync:
    """Test location rewriting on view state changes."""

    def test_changes_replace_the_current_entry(self, make_sync):
        synchronizer, history = make_sync("/calendar?tab=tasks")
        synchronizer.mount()

        synchronizer.update(view_mode="day", focused_date="2024-03-15")

        assert history.length == 1
        assert history.current_url() == "/calendar?tab=tasks&view=day&date=2024-03-15"
        assert history.current_state()["calendarView"]["view"] == "day"

    def test_unchanged_state_does_not_notify(self, make_sync):
        synchronizer, _ = make_sync()
        synchronizer.mount()
        seen = []
        synchronizer.view_state_changed.connect(seen.append)

        synchronizer.set_view_mode("month")
        synchronizer.set_view_mode("week")

        assert [state.view_mode for state in seen] == [ViewMode.WEEK]

    def test_invalid_values_rejected(self, make_sync):
        synchronizer, _ = make_sync()
        synchronizer.mount()

        with pytest.raises(ValueError):
            synchronizer.set_view_mode("year")
        with pytest.raises(ValueError):
            synchronizer.set_focused_date("not-a-date")
        with pytest.raises(ValueError):
            synchronizer.set_filters(["category"])

    def test_changes_before_mount_rejected(self, make_sync):
        synchronizer, _ = make_sync()
        with pytest.raises(RuntimeError):
            synchronizer.set_view_mode("week")


class TestNavigation:
    """Test back/forward navigation handling."""

    def test_navigate_to_pushes_entry(self, make_sync):
        synchronizer, history = make_sync()
        synchronizer.mount()

        synchronizer.navigate_to(view_mode="week", focused_date=date(2024, 3, 1))

        assert history.length == 2
        assert history.current_url() == "/calendar?view=week&date=2024-03-01"

    def test_back_and_forward_restore_view_state(self, store, make_sync, scheduler):
        synchronizer, history = make_sync()
        synchronizer.mount()
        synchronizer.navigate_to(
            view_mode="week", focused_date="2024-03-01", active_filters={"category": "work"}
        )
        scheduler.advance(500)

        history.back()

        assert synchronizer.view_state == ViewState(ViewMode.MONTH, TODAY, {})
        assert history.length == 2
        assert history.current_url() == "/calendar?view=month&date=2024-03-10"

        scheduler.advance(500)
        assert store.get("lastView") == "month"

        history.forward()
        assert synchronizer.view_state == ViewState(
            ViewMode.WEEK, date(2024, 3, 1), {"category": "work"}
        )

    def test_navigation_keeps_filters_when_saving_filters_is_off(
        self, store, make_sync, scheduler
    ):
        store.set("saveFilters", False)
        synchronizer, history = make_sync()
        synchronizer.mount()
        synchronizer.set_filters({"category": "work"})

        synchronizer.navigate_to(view_mode="week")
        history.back()

        assert synchronizer.view_state == ViewState(ViewMode.MONTH, TODAY, {"category": "work"})

        history.forward()
        assert synchronizer.view_state == ViewState(ViewMode.WEEK, TODAY, {"category": "work"})

        scheduler.advance(500)
        assert store.get("lastView") == "week"
        assert store.get("lastFilters") == {}

    def test_foreign_history_entries_are_ignored(self, make_sync):
        synchronizer, history = make_sync()
        synchronizer.mount()
        history.push_state({"other": True}, "/settings")
        history.push_state(None, "/profile")

        history.back()

        assert synchronizer.view_state.view_mode is ViewMode.MONTH
        assert history.current_url() == "/settings"

    def test_status(self, make_sync):
        synchronizer, _ = make_sync()
        synchronizer.mount()

        status = synchronizer.get_status()

        assert status["phase"] == "synced"
        assert status["view_mode"] == "month"
        assert status["persist_pending"] is True


class TestDeferredRestore:
    """Test mounting while remote preferences are still loading."""

    def test_restore_waits_for_remote_preferences(self, qapp, scheduler, clock):
        store = _remote_store(
            InMemoryKeyValueStore(),
            scheduler,
            lambda request: httpx.Response(200, json={"lastView": "week", "lastDate": "2024-03-05"}),
        )
        history = InMemoryLocationHistory("/calendar")
        synchronizer = ViewStateSynchronizer(store, history, scheduler=scheduler, clock=clock)
        provisional = []

        async def run():
            store.load("alice", RemoteSession("alice", "tok-a"))
            provisional.append(synchronizer.mount())
            provisional.append(synchronizer.phase)
            provisional.append(synchronizer.persist_pending)
            provisional.append(history.current_url())
            await store.drain()

        asyncio.run(run())

        assert provisional == [
            ViewState(ViewMode.MONTH, TODAY, {}),
            SyncPhase.RESTORING,
            False,
            "/calendar",
        ]
        assert synchronizer.phase is SyncPhase.SYNCED
        assert synchronizer.view_state == ViewState(ViewMode.WEEK, date(2024, 3, 5), {})
        assert history.current_url() == "/calendar?view=week&date=2024-03-05"

        scheduler.advance(500)
        assert store.get("lastView") == "week"
        assert store.get("lastDate") == "2024-03-05"

    def test_failed_remote_load_restores_from_cache(self, qapp, scheduler, clock):
        kv = InMemoryKeyValueStore()
        kv.set(
            "calendar_preferences_alice",
            json.dumps({"lastView": "day", "lastDate": "2024-03-08"}),
        )
        store = _remote_store(kv, scheduler, lambda request: httpx.Response(503))
        history = InMemoryLocationHistory("/calendar")
        synchronizer = ViewStateSynchronizer(store, history, scheduler=scheduler, clock=clock)

        async def run():
            store.load("alice", RemoteSession("alice", "tok-a"))
            synchronizer.mount()
            await store.drain()

        asyncio.run(run())

        assert synchronizer.phase is SyncPhase.SYNCED
        assert synchronizer.view_state == ViewState(ViewMode.DAY, date(2024, 3, 8), {})
        assert history.current_url() == "/calendar?view=day&date=2024-03-08"

    def test_changes_while_loading_do_not_touch_location(self, qapp, scheduler, clock):
        store = _remote_store(
            InMemoryKeyValueStore(), scheduler, lambda request: httpx.Response(200, json={})
        )
        history = InMemoryLocationHistory("/calendar")
        synchronizer = ViewStateSynchronizer(store, history, scheduler=scheduler, clock=clock)
        during = []

        async def run():
            store.load("alice", RemoteSession("alice", "tok-a"))
            synchronizer.mount()
            synchronizer.set_view_mode("day")
            during.append(synchronizer.view_state.view_mode)
            during.append(history.current_url())
            during.append(synchronizer.persist_pending)
            await store.drain()

        asyncio.run(run())

        assert during == [ViewMode.DAY, "/calendar", False]
        assert synchronizer.phase is SyncPhase.SYNCED
        assert history.current_url() == "/calendar?view=month&date=2024-03-10"

    def test_unmount_while_loading_stops_waiting(self, qapp, scheduler, clock):
        store = _remote_store(
            InMemoryKeyValueStore(),
            scheduler,
            lambda request: httpx.Response(200, json={"lastView": "week"}),
        )
        history = InMemoryLocationHistory("/calendar")
        synchronizer = ViewStateSynchronizer(store, history, scheduler=scheduler, clock=clock)

        async def run():
            store.load("alice", RemoteSession("alice", "tok-a"))
            synchronizer.mount()
            synchronizer.unmount()
            await store.drain()

        asyncio.run(run())

        assert synchronizer.phase is SyncPhase.UNSET
        assert history.current_url() == "/calendar"
        assert store.get("lastView") == "week"
