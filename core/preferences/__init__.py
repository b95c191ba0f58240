"""Calendar preference storage, persistence and import/export."""

from core.preferences.backends import (
    LocalCacheBackend,
    RemotePreferenceBackend,
    RemoteSession,
    build_storage_key,
)
from core.preferences.codec import PreferenceBundle
from core.preferences.exceptions import (
    InvalidFormatError,
    PreferenceError,
    RemoteSyncError,
    StorageReadError,
)
from core.preferences.store import PreferenceStore

__all__ = [
    'LocalCacheBackend',
    'RemotePreferenceBackend',
    'RemoteSession',
    'build_storage_key',
    'PreferenceBundle',
    'PreferenceError',
    'StorageReadError',
    'RemoteSyncError',
    'InvalidFormatError',
    'PreferenceStore',
]
