"""Pydantic models for journal entries, index records and API payloads.

Entries and index records are persisted as JSON using the camelCase wire
names (``createdAt``/``updatedAt``); Python code uses the snake_case
attributes.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MOOD = "neutral"


def _unique(tags: List[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            out.append(tag)
    return out


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IndexRecord(_WireModel):
    """Summary of an entry kept in the owner's index for listing."""

    id: str
    title: str
    mood: str = DEFAULT_MOOD
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class JournalEntry(_WireModel):
    """Full journal record, owned by exactly one user."""

    id: str
    owner: str
    title: str
    content: str
    mood: str = DEFAULT_MOOD
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, v: Optional[List[str]]) -> List[str]:
        """Tags form a set; keep the first occurrence of each."""

        if isinstance(v, (str, bytes)):
            raise ValueError("tags must be a list of strings")
        return _unique(list(v or []))

    def summary(self) -> IndexRecord:
        return IndexRecord(
            id=self.id,
            title=self.title,
            mood=self.mood,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class EntryCreate(BaseModel):
    """Body of ``POST /api/journals/{owner}``.

    ``title`` and ``content`` are optional at the schema level so that a
    missing value is reported as a 400 by the store rather than a 422.
    """

    title: Optional[str] = None
    content: Optional[str] = None
    mood: Optional[str] = None
    tags: Optional[List[str]] = None


class EntryUpdate(BaseModel):
    """Body of ``PUT /api/journals/{owner}/{id}``.

    Which fields were actually supplied is read from ``model_fields_set``.
    """

    title: Optional[str] = None
    content: Optional[str] = None
    mood: Optional[str] = None
    tags: Optional[List[str]] = None


class EntryList(BaseModel):
    owner: str
    entries: List[IndexRecord]


class EntryMessage(BaseModel):
    message: str
    entry: JournalEntry


class Message(BaseModel):
    message: str


class ReconcileReport(BaseModel):
    """Outcome of rebuilding one owner's index from its entry keys."""

    owner: str
    indexed: int
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)


class ReconcileMessage(BaseModel):
    message: str
    report: ReconcileReport


__all__ = [
    "DEFAULT_MOOD",
    "IndexRecord",
    "JournalEntry",
    "EntryCreate",
    "EntryUpdate",
    "EntryList",
    "EntryMessage",
    "Message",
    "ReconcileReport",
    "ReconcileMessage",
]
