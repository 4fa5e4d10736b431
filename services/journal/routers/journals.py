from fastapi import APIRouter, Depends, HTTPException, Request, status

from services.common import get_logger

from ..errors import BackendUnavailable, EntryNotFound, EntryValidationError
from ..schemas import (
    EntryCreate,
    EntryList,
    EntryMessage,
    EntryUpdate,
    JournalEntry,
    Message,
    ReconcileMessage,
)
from ..store import JournalStore

logger = get_logger(__name__)

router = APIRouter(prefix="/api/journals", tags=["journals"])


def get_store(request: Request) -> JournalStore:
    """Return the store built at startup for this application."""
    return request.app.state.store


def _backend_failure(exc: BackendUnavailable, detail: str, **fields) -> HTTPException:
    logger.error(detail, extra={**fields, "error": str(exc)})
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@router.get("/{owner}", response_model=EntryList)
async def list_entries(owner: str, store: JournalStore = Depends(get_store)) -> EntryList:
    try:
        entries = await store.list(owner)
    except BackendUnavailable as exc:
        raise _backend_failure(exc, "Failed to retrieve journal entries", owner=owner) from exc
    return EntryList(owner=owner, entries=entries)


@router.get("/{owner}/{entry_id}", response_model=JournalEntry)
async def get_entry(
    owner: str, entry_id: str, store: JournalStore = Depends(get_store)
) -> JournalEntry:
    try:
        return await store.get(owner, entry_id)
    except EntryNotFound as exc:
        raise HTTPException(status_code=404, detail="Entry not found") from exc
    except BackendUnavailable as exc:
        raise _backend_failure(
            exc, "Failed to retrieve journal entry", owner=owner, entry_id=entry_id
        ) from exc


@router.post("/{owner}", response_model=EntryMessage, status_code=status.HTTP_201_CREATED)
async def create_entry(
    owner: str, body: EntryCreate, store: JournalStore = Depends(get_store)
) -> EntryMessage:
    try:
        entry = await store.create(owner, body.title, body.content, body.mood, body.tags)
    except EntryValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BackendUnavailable as exc:
        raise _backend_failure(exc, "Failed to create journal entry", owner=owner) from exc
    return EntryMessage(message="Journal entry created", entry=entry)


@router.put("/{owner}/{entry_id}", response_model=EntryMessage)
async def update_entry(
    owner: str,
    entry_id: str,
    body: EntryUpdate,
    store: JournalStore = Depends(get_store),
) -> EntryMessage:
    try:
        entry = await store.update(owner, entry_id, body)
    except EntryNotFound as exc:
        raise HTTPException(status_code=404, detail="Entry not found") from exc
    except BackendUnavailable as exc:
        raise _backend_failure(
            exc, "Failed to update journal entry", owner=owner, entry_id=entry_id
        ) from exc
    return EntryMessage(message="Journal entry updated", entry=entry)


@router.delete("/{owner}/{entry_id}", response_model=Message)
async def delete_entry(
    owner: str, entry_id: str, store: JournalStore = Depends(get_store)
) -> Message:
    try:
        await store.delete(owner, entry_id)
    except BackendUnavailable as exc:
        raise _backend_failure(
            exc, "Failed to delete journal entry", owner=owner, entry_id=entry_id
        ) from exc
    return Message(message="Journal entry deleted")


@router.post("/{owner}/reconcile", response_model=ReconcileMessage)
async def reconcile_index(owner: str, store: JournalStore = Depends(get_store)) -> ReconcileMessage:
    """Rebuild the owner's index from its stored entries."""
    try:
        report = await store.reconcile(owner)
    except BackendUnavailable as exc:
        raise _backend_failure(exc, "Failed to reconcile journal index", owner=owner) from exc
    return ReconcileMessage(message="Journal index rebuilt", report=report)
