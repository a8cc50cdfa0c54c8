"""
Sync Module - Routes
======================
Change feed for client caches.

Endpoints:
  GET /api/sync/changes?since=&limit=   — Poll: entries after a cursor
  GET /api/sync/stream?since=           — Server-sent events tailing the same feed

Clients prefer the stream and fall back to polling; either way a full
view refresh is the recovery path after any gap.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from config.database import SessionLocal, get_db
from config.settings import SYNC_PAGE_LIMIT, SYNC_STREAM_INTERVAL_SECONDS
from modules.auth.deps import require_login
from modules.canteen.service import canteen_service
from modules.sync.service import TABLE_VIEWS, change_feed
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.sync")

router = APIRouter(prefix="/api/sync", tags=["sync"])


def _entry_dict(entry) -> dict:
    data = entry.to_dict()
    data["views"] = list(TABLE_VIEWS.get(entry.table_name, ()))
    return data


def _read_page(db: Session, ctx: SessionContext, cursor: int, limit: int):
    admin_ids = canteen_service.admin_canteen_ids(db, ctx)
    return change_feed.changes_since(db, ctx, cursor, limit, admin_canteen_ids=admin_ids)


async def change_stream(
    session_factory: Callable[[], Session], ctx: SessionContext, cursor: int,
    interval: float = SYNC_STREAM_INTERVAL_SECONDS, max_polls: Optional[int] = None,
    is_disconnected: Optional[Callable] = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for new feed entries. Each frame's id is the cursor,
    so a reconnecting client resumes with Last-Event-ID.
    """
    polls = 0
    while max_polls is None or polls < max_polls:
        if is_disconnected and await is_disconnected():
            break
        db = session_factory()
        try:
            entries, cursor = _read_page(db, ctx, cursor, SYNC_PAGE_LIMIT)
            frames = [
                f"id: {e.id}\nevent: change\ndata: {json.dumps(_entry_dict(e))}\n\n"
                for e in entries
            ]
        finally:
            db.close()

        for frame in frames:
            yield frame
        if not frames:
            yield ": keepalive\n\n"

        polls += 1
        if max_polls is None or polls < max_polls:
            await asyncio.sleep(interval)


@router.get("/changes")
async def poll_changes(
    since: int = Query(0, ge=0),
    limit: int = Query(SYNC_PAGE_LIMIT, ge=1, le=SYNC_PAGE_LIMIT),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    entries, next_cursor = _read_page(db, ctx, since, limit)
    return {
        "success": True,
        "cursor": next_cursor,
        "has_more": len(entries) == limit,
        "changes": [_entry_dict(e) for e in entries],
    }


@router.get("/stream")
async def stream_changes(
    request: Request,
    since: Optional[int] = Query(None, ge=0),
    ctx: SessionContext = Depends(require_login),
):
    cursor = since
    if cursor is None:
        last_event = request.headers.get("Last-Event-ID", "")
        cursor = int(last_event) if last_event.isdigit() else 0

    logger.debug(f"SSE stream opened for {ctx.user_id} at cursor {cursor}")
    return StreamingResponse(
        change_stream(SessionLocal, ctx, cursor, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
