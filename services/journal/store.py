"""Journal persistence over :class:`BackendLink`.

Every entry is stored twice: as a full record under
``journal:{owner}:entry:{id}`` and as an :class:`IndexRecord` inside the
JSON array at ``journal:{owner}:entries``. Redis gives no cross-key
transaction here, so the two writes can drift apart if the process dies
between them. :meth:`JournalStore.reconcile` rebuilds an owner's index from
the entry keys to repair that.

Within one process, update/delete hold a lock per ``(owner, id)`` and every
index read-modify-write holds a lock per owner. Entry lock is always taken
before index lock.
"""

from __future__ import annotations

import asyncio
import json
import re
import uuid
import weakref
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from services.common import get_logger

from .errors import EntryNotFound, EntryValidationError
from .schemas import (
    DEFAULT_MOOD,
    EntryUpdate,
    IndexRecord,
    JournalEntry,
    ReconcileReport,
)
from .storage import BackendLink

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _glob_escape(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JournalStore:
    """List/get/create/update/delete for journal entries."""

    def __init__(
        self,
        link: BackendLink,
        *,
        ttl: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.link = link
        self.ttl = ttl
        self._clock = clock
        self._id_factory = id_factory
        self._entry_locks: "weakref.WeakValueDictionary[tuple, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._index_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @staticmethod
    def index_key(owner: str) -> str:
        return f"journal:{owner}:entries"

    @staticmethod
    def entry_key(owner: str, entry_id: str) -> str:
        return f"journal:{owner}:entry:{entry_id}"

    # -- helpers ---------------------------------------------------------

    @staticmethod
    def _lock(registry: weakref.WeakValueDictionary, key) -> asyncio.Lock:
        lock = registry.get(key)
        if lock is None:
            lock = asyncio.Lock()
            registry[key] = lock
        return lock

    def _entry_lock(self, owner: str, entry_id: str) -> asyncio.Lock:
        return self._lock(self._entry_locks, (owner, entry_id))

    def _index_lock(self, owner: str) -> asyncio.Lock:
        return self._lock(self._index_locks, owner)

    def _now(self, after: Optional[datetime] = None) -> datetime:
        now = self._clock()
        if after is not None and now <= after:
            now = after + timedelta(microseconds=1)
        return now

    async def _read_index(self, owner: str, *, prune: bool = True) -> List[IndexRecord]:
        """Index records for ``owner``.

        With ``prune`` set, records not rewritten within the TTL are dropped:
        their entry keys have already expired while the index key, refreshed
        by later writes, lives on.
        """

        raw = await self.link.get(self.index_key(owner))
        if not raw:
            return []
        records = [IndexRecord.model_validate(item) for item in json.loads(raw)]
        if prune:
            cutoff = self._clock() - timedelta(seconds=self.ttl)
            records = [r for r in records if r.updated_at > cutoff]
        return records

    async def _write_index(self, owner: str, records: Iterable[IndexRecord]) -> None:
        payload = json.dumps([r.model_dump(mode="json", by_alias=True) for r in records])
        await self.link.set(self.index_key(owner), payload, self.ttl)

    async def _write_entry(self, entry: JournalEntry) -> None:
        await self.link.set(
            self.entry_key(entry.owner, entry.id),
            entry.model_dump_json(by_alias=True),
            self.ttl,
        )

    # -- operations ------------------------------------------------------

    async def list(self, owner: str) -> List[IndexRecord]:
        """Index records for ``owner``, most recently updated first."""

        records = await self._read_index(owner)
        # stable: ties keep their stored order
        records.sort(key=lambda r: r.updated_at, reverse=True)
        logger.info("Retrieved journal entries", extra={"owner": owner, "count": len(records)})
        return records

    async def get(self, owner: str, entry_id: str) -> JournalEntry:
        raw = await self.link.get(self.entry_key(owner, entry_id))
        if raw is None:
            logger.warning("Journal entry not found", extra={"owner": owner, "entry_id": entry_id})
            raise EntryNotFound(owner, entry_id)
        logger.info("Retrieved journal entry", extra={"owner": owner, "entry_id": entry_id})
        return JournalEntry.model_validate_json(raw)

    async def create(
        self,
        owner: str,
        title: Optional[str],
        content: Optional[str],
        mood: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> JournalEntry:
        if not title or not content:
            logger.warning(
                "Invalid journal entry - missing title or content", extra={"owner": owner}
            )
            raise EntryValidationError("Title and content are required")

        now = self._now()
        try:
            entry = JournalEntry(
                id=self._id_factory(),
                owner=owner,
                title=title,
                content=content,
                mood=mood or DEFAULT_MOOD,
                tags=tags or [],
                created_at=now,
                updated_at=now,
            )
        except ValidationError as exc:
            logger.warning("Invalid journal entry", extra={"owner": owner, "error": str(exc)})
            raise EntryValidationError("Invalid journal entry fields") from exc
        await self._write_entry(entry)

        async with self._index_lock(owner):
            records = await self._read_index(owner)
            # reconcile() may already have indexed it
            if all(r.id != entry.id for r in records):
                records.append(entry.summary())
                await self._write_index(owner, records)

        logger.info(
            "Created new journal entry",
            extra={"owner": owner, "entry_id": entry.id, "title": title},
        )
        return entry

    async def update(
        self,
        owner: str,
        entry_id: str,
        fields: Union[EntryUpdate, Mapping[str, object]],
    ) -> JournalEntry:
        """Merge ``fields`` into the stored entry and rewrite it whole.

        ``title``, ``content`` and ``mood`` are only replaced by a supplied,
        non-empty value; they can never become empty. ``tags`` is replaced
        whenever it is supplied, so ``[]`` clears it.
        """

        if not isinstance(fields, EntryUpdate):
            try:
                fields = EntryUpdate.model_validate(fields)
            except ValidationError as exc:
                raise EntryValidationError("Invalid journal entry fields") from exc
        supplied = fields.model_fields_set

        async with self._entry_lock(owner, entry_id):
            raw = await self.link.get(self.entry_key(owner, entry_id))
            if raw is None:
                logger.warning(
                    "Journal entry not found for update",
                    extra={"owner": owner, "entry_id": entry_id},
                )
                raise EntryNotFound(owner, entry_id)
            existing = JournalEntry.model_validate_json(raw)

            merged = existing.model_dump()
            for name in ("title", "content", "mood"):
                value = getattr(fields, name)
                if name in supplied and value:
                    merged[name] = value
            if "tags" in supplied and fields.tags is not None:
                merged["tags"] = fields.tags
            merged["updated_at"] = self._now(after=existing.updated_at)
            updated = JournalEntry.model_validate(merged)

            await self._write_entry(updated)

            async with self._index_lock(owner):
                records = await self._read_index(owner)
                for i, record in enumerate(records):
                    if record.id == entry_id:
                        records[i] = updated.summary()
                        await self._write_index(owner, records)
                        break
                else:
                    logger.warning(
                        "Index record missing for updated entry; index left unchanged",
                        extra={"owner": owner, "entry_id": entry_id},
                    )

        logger.info("Updated journal entry", extra={"owner": owner, "entry_id": entry_id})
        return updated

    async def delete(self, owner: str, entry_id: str) -> None:
        """Remove the entry and its index record; absent ones are ignored."""

        async with self._entry_lock(owner, entry_id):
            await self.link.delete(self.entry_key(owner, entry_id))
            async with self._index_lock(owner):
                records = await self._read_index(owner)
                remaining = [r for r in records if r.id != entry_id]
                await self._write_index(owner, remaining)

        logger.info("Deleted journal entry", extra={"owner": owner, "entry_id": entry_id})

    async def reconcile(self, owner: str) -> ReconcileReport:
        """Rebuild ``owner``'s index from a scan of its entry keys."""

        prefix = self.entry_key(owner, "")
        pattern = self.entry_key(_glob_escape(owner), "*")
        async with self._index_lock(owner):
            entries: List[JournalEntry] = []
            for key in await self.link.scan(pattern):
                raw = await self.link.get(key)
                if raw is None:
                    continue  # expired or deleted since the scan
                try:
                    entry = JournalEntry.model_validate_json(raw)
                except ValidationError:
                    # owners containing ":entry:" share the key prefix
                    logger.warning("Skipping non-entry key", extra={"owner": owner, "key": key})
                    continue
                if entry.owner == owner and key == prefix + entry.id:
                    entries.append(entry)
            entries.sort(key=lambda e: e.created_at)

            before = {r.id for r in await self._read_index(owner, prune=False)}
            after = [e.id for e in entries]
            await self._write_index(owner, (e.summary() for e in entries))

        report = ReconcileReport(
            owner=owner,
            indexed=len(after),
            added=[i for i in after if i not in before],
            removed=sorted(before.difference(after)),
        )
        logger.info(
            "Reconciled journal index",
            extra={
                "owner": owner,
                "count": report.indexed,
                "added": len(report.added),
                "removed": len(report.removed),
            },
        )
        return report


__all__ = ["DEFAULT_TTL_SECONDS", "JournalStore"]
