"""
User notifications API: persisted read state, plus a WebSocket for live push.

Recipient is always the authenticated user.
Supports: list (with unread filter), mark one read, mark all read, live stream.
"""
import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, user_from_token
from app.core.constants import NOTIFICATIONS_DEFAULT_LIMIT, NOTIFICATIONS_MAX_LIMIT
from app.core.errors import DomainError
from app.db.session import SessionLocal, get_db
from app.models.notification import Notification
from app.models.user import User
from app.services.notifications import bus, serialize_notification

router = APIRouter()
logger = logging.getLogger(__name__)

# WebSocket close code for policy violation (bad or missing token)
WS_POLICY_VIOLATION = 1008


# --- List ---


@router.get("/notifications")
def list_notifications(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    limit: int = Query(NOTIFICATIONS_DEFAULT_LIMIT, ge=1, le=NOTIFICATIONS_MAX_LIMIT),
    unread_only: bool = Query(False),
) -> dict[str, Any]:
    """
    List notifications for the caller, newest first.
    Use unread_only=true to only return unread (e.g. for badge count or filtered view).
    """
    q = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    rows = q.order_by(Notification.id.desc()).limit(limit).all()
    unread_count = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .count()
    )
    return {
        "notifications": [serialize_notification(r) for r in rows],
        "unread_count": unread_count,
    }


# --- Mark one read ---


@router.patch("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    """Mark a single notification as read (persisted)."""
    row = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .first()
    )
    if not row:
        return {"ok": False, "error": "not_found"}
    if not row.is_read:
        row.is_read = True
        db.commit()
    return {"ok": True, "id": notification_id}


# --- Mark all read ---


@router.post("/notifications/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    """Mark all notifications for the caller as read (e.g. 'Clear all' in UI)."""
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"ok": True, "marked_count": updated}


# --- Live stream ---


@router.websocket("/ws/notifications")
async def notifications_stream(websocket: WebSocket, token: str | None = Query(None)):
    """
    Push committed notifications to the connected user as JSON messages.
    Messages published while nobody is connected are not replayed; use GET /notifications.
    """
    db = SessionLocal()
    try:
        user_id = user_from_token(db, token).id
    except DomainError:
        await websocket.close(code=WS_POLICY_VIOLATION)
        return
    finally:
        db.close()

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    unsubscribe = bus.subscribe(user_id, lambda payload: loop.call_soon_threadsafe(queue.put_nowait, payload))
    logger.info("Notification stream opened for user %s", user_id)

    async def forward() -> None:
        while True:
            payload = await queue.get()
            await websocket.send_json(payload)

    async def drain() -> None:
        # Client messages are ignored; returns on disconnect
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass

    tasks = [asyncio.create_task(forward()), asyncio.create_task(drain())]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        unsubscribe()
        for task in tasks:
            task.cancel()
        for outcome in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(outcome, Exception) and not isinstance(outcome, WebSocketDisconnect):
                logger.info("Notification stream for user %s stopped: %s", user_id, outcome)
        logger.info("Notification stream closed for user %s", user_id)
