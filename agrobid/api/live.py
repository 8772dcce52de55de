"""
Live auction feed.

Viewers connect once, then join or leave sale rooms:
    {"action": "join-sale-room", "sale_id": "<uuid>"}
    {"action": "leave-sale-room", "sale_id": "<uuid>"}
Events from joined rooms arrive as {"event", "sale_id", "data"}.
"""
import json
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from agrobid.core.deps import resolve_user
from agrobid.db.session import SessionLocal
from agrobid.services.notification_service import sale_event_hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def _authenticate(token: Optional[str]):
    if not token:
        return None
    db = SessionLocal()
    try:
        return resolve_user(db, token)
    finally:
        db.close()


@router.websocket("/ws/auctions")
async def auction_feed(websocket: WebSocket, token: Optional[str] = Query(None)):
    user = await run_in_threadpool(_authenticate, token)
    if not user:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info(f"User connected to auction feed: {user.id} ({user.role})")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                action = message.get("action")
                sale_id = UUID(str(message.get("sale_id")))
            except (ValueError, AttributeError):
                await websocket.send_json({"event": "error", "detail": "Expected {action, sale_id}"})
                continue

            if action == "join-sale-room":
                sale_event_hub.join(sale_id, websocket)
                await websocket.send_json({"event": "joined", "sale_id": str(sale_id)})
            elif action == "leave-sale-room":
                sale_event_hub.leave(sale_id, websocket)
                await websocket.send_json({"event": "left", "sale_id": str(sale_id)})
            else:
                await websocket.send_json({"event": "error", "detail": f"Unknown action '{action}'"})
    except WebSocketDisconnect:
        logger.info(f"User disconnected from auction feed: {user.id}")
    finally:
        sale_event_hub.disconnect(websocket)
