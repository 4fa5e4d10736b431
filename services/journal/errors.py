"""Error taxonomy shared by the link, the store and the HTTP layer."""


class JournalError(Exception):
    """Base class for journal service failures."""

    status_code = 500


class EntryValidationError(JournalError):
    """Required input is missing or empty."""

    status_code = 400


class EntryNotFound(JournalError):
    status_code = 404

    def __init__(self, owner: str, entry_id: str) -> None:
        super().__init__(f"entry {entry_id} not found for {owner}")
        self.owner = owner
        self.entry_id = entry_id


class BackendUnavailable(JournalError):
    """A backend call failed or the link is down."""

    status_code = 500


__all__ = [
    "JournalError",
    "EntryValidationError",
    "EntryNotFound",
    "BackendUnavailable",
]
