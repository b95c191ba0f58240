"""Calendar view state, shareable location and navigation history sync."""

from core.view_state.exceptions import FilterDecodeError, ViewStateError
from core.view_state.history import InMemoryLocationHistory, LocationHistory
from core.view_state.models import SyncPhase, ViewMode, ViewState
from core.view_state.synchronizer import ViewStateSynchronizer

__all__ = [
    'FilterDecodeError',
    'ViewStateError',
    'InMemoryLocationHistory',
    'LocationHistory',
    'SyncPhase',
    'ViewMode',
    'ViewState',
    'ViewStateSynchronizer',
]
