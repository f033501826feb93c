from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from .db import get_session
from .errors import AppError
from .events import hub
from .security import resolve_identity

log = logging.getLogger("teashop.realtime")

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def ws_events(websocket: WebSocket, s: Session = Depends(get_session)):
    """Per-shop event stream: `{"event": <name>, "data": <payload>}` messages."""
    try:
        ident = resolve_identity(websocket.query_params.get("token"), s)
    except AppError as e:
        await websocket.accept()
        await websocket.close(code=1008, reason=e.message)
        return
    finally:
        s.close()
    await websocket.accept()
    hub.connect(ident.shop_id, websocket)
    log.info("socket connected", extra={"shop_id": ident.shop_id, "user_id": ident.user_id})
    try:
        while True:
            # inbound frames are ignored; this only detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(ident.shop_id, websocket)
        log.info("socket disconnected", extra={"shop_id": ident.shop_id, "user_id": ident.user_id})
