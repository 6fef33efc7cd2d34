"""
Entry routes.

A thin facade over the record store: create (and dispatch), list, read.
No endpoint writes status or progress; those only change through the
worker's guarded updates.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from entryflow.api.dependencies import AppSettings, DispatcherDep, Store
from entryflow.constants import API_PREFIX
from entryflow.observability.metrics import get_metrics
from entryflow.types.api import (
    CreateEntryRequest,
    EntryListResponse,
    EntryResponse,
    ErrorResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_PREFIX}/entries", tags=["Entries"])


@router.post(
    "",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entry",
    description="Create an entry and start processing it in the background.",
)
async def create_entry(
    request: CreateEntryRequest,
    store: Store,
    dispatcher: DispatcherDep,
) -> EntryResponse:
    """
    Create a new entry.

    The scheduler run is dispatched without waiting for it; its outcome is
    observed through the entry's status.

    Args:
        request: Entry creation request.
        store: Record store.
        dispatcher: Background dispatcher.

    Returns:
        EntryResponse for the freshly created entry.
    """
    record = await store.create(request.title)

    get_metrics().record_entry_created()
    dispatcher.dispatch(record.id)

    return EntryResponse.from_record(record)


@router.get(
    "",
    response_model=EntryListResponse,
    summary="List entries",
    description="List entries, newest first.",
)
async def list_entries(
    store: Store,
    settings: AppSettings,
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
) -> EntryListResponse:
    """
    List entries with limit/offset paging.

    ``limit`` defaults to ``ENTRIES_DEFAULT_LIMIT`` and is capped at
    ``ENTRIES_MAX_LIMIT``.
    """
    limit = min(limit or settings.entries_default_limit, settings.entries_max_limit)
    page = await store.list_entries(limit=limit, offset=offset)

    return EntryListResponse(
        entries=[EntryResponse.from_record(record) for record in page.entries],
        total=page.total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{entry_id}",
    response_model=EntryResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Get entry details",
    description="Get the current state of a specific entry.",
)
async def get_entry(entry_id: UUID, store: Store) -> EntryResponse:
    """
    Get entry details by ID.

    Raises:
        HTTPException: If the entry does not exist.
    """
    record = await store.read(entry_id)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Entry not found",
        )

    return EntryResponse.from_record(record)
