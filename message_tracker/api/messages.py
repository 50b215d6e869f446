"""
Administrative endpoints for inspecting and managing processed messages.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import Response

from message_tracker.config.settings import get_settings
from message_tracker.domain.processing_record import (
    CheckRequest,
    CheckResponse,
    ClaimResponse,
    ClearResponse,
    MarkResponse,
    MessageStatusResponse,
)
from message_tracker.infrastructure.kv_store import build_store
from message_tracker.usecases.dedup_tracker import DedupTracker

logger = logging.getLogger(__name__)
router = APIRouter()

# Shared tracker instance
_tracker: Optional[DedupTracker] = None


def get_tracker() -> DedupTracker:
    """Get or create the tracker configured from settings."""
    global _tracker

    if _tracker is None:
        settings = get_settings()
        _tracker = DedupTracker.from_settings(build_store(settings), settings)

    return _tracker


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "message-tracker"}


@router.get("/messages/stats")
async def tracker_stats(tracker: DedupTracker = Depends(get_tracker)):
    """Tracker configuration."""
    return tracker.stats()


@router.post("/messages/check", response_model=CheckResponse)
async def check_messages(
    request: CheckRequest,
    tracker: DedupTracker = Depends(get_tracker),
):
    """Check several message ids at once."""
    results = await tracker.check_multiple(request.msg_ids)
    return CheckResponse(results=results)


@router.post("/messages/cleanup")
async def cleanup_messages(tracker: DedupTracker = Depends(get_tracker)):
    """Purge expired records from stores without native expiry."""
    purged = await tracker.cleanup_expired_records()
    return {"purged": purged}


@router.get("/messages/{msg_id}", response_model=MessageStatusResponse)
async def get_message(msg_id: str, tracker: DedupTracker = Depends(get_tracker)):
    """
    Get the dedup status of a message.

    Returns 404 when no record is stored for the id.
    """
    record = await tracker.get_process_info(msg_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No record for message {msg_id}")

    processed = await tracker.is_processed(msg_id)
    return MessageStatusResponse(msg_id=msg_id, processed=processed, record=record.to_wire())


@router.post("/messages/{msg_id}/processed", response_model=MarkResponse)
async def mark_message(
    msg_id: str,
    metadata: Optional[Dict[str, Any]] = Body(default=None),
    tracker: DedupTracker = Depends(get_tracker),
):
    """
    Mark a message as processed.

    Responds 503 when the record could not be written.
    """
    if not await tracker.mark_processed(msg_id, metadata):
        raise HTTPException(status_code=503, detail=f"Could not record message {msg_id}")
    return MarkResponse(msg_id=msg_id, marked=True)


@router.post("/messages/{msg_id}/claim", response_model=ClaimResponse)
async def claim_message(
    msg_id: str,
    metadata: Optional[Dict[str, Any]] = Body(default=None),
    tracker: DedupTracker = Depends(get_tracker),
):
    """Claim a message for processing."""
    claimed = await tracker.claim(msg_id, metadata)
    return ClaimResponse(msg_id=msg_id, claimed=claimed)


@router.delete("/messages/{msg_id}")
async def delete_message(
    msg_id: str,
    best_effort: bool = Query(default=False),
    tracker: DedupTracker = Depends(get_tracker),
):
    """
    Delete a message record.

    With best_effort=true store failures are reported in the body instead
    of failing the request.
    """
    if best_effort:
        cleared = await tracker.clear(msg_id)
        return ClearResponse(msg_id=msg_id, cleared=cleared)

    try:
        await tracker.remove(msg_id)
    except Exception as e:
        logger.exception(f"Error removing message {msg_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Store error while removing {msg_id}")

    return Response(status_code=204)
