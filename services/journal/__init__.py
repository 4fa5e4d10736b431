"""Journal service: Redis-backed journal entries with a per-owner index."""

from .config import JournalSettings
from .errors import BackendUnavailable, EntryNotFound, EntryValidationError, JournalError
from .health import HealthReporter
from .storage import BackendLink, LinkState
from .store import JournalStore

__all__ = [
    "BackendLink",
    "BackendUnavailable",
    "EntryNotFound",
    "EntryValidationError",
    "HealthReporter",
    "JournalError",
    "JournalSettings",
    "JournalStore",
    "LinkState",
]
