"""
Real-time event fan-out.

Sockets are grouped per shop and only ever receive their own shop's
events. `publish` is safe to call from the synchronous route handlers
(which run in the threadpool): delivery is handed to the server loop and
the caller never waits on, or fails because of, a slow or dead socket.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

log = logging.getLogger("teashop.events")

NEW_ORDER = "new-order"
ORDER_STATUS_UPDATE = "order-status-update"
ORDER_CANCELLED = "order-cancelled"
ORDER_DELETED = "order-deleted"
LOW_STOCK_ALERT = "low-stock-alert"
TABLE_STATUS_UPDATE = "table-status-update"

Listener = Callable[[str, str, Any], None]


class EventHub:
    def __init__(self) -> None:
        self._sockets: Dict[str, Set[WebSocket]] = {}
        self._listeners: List[Listener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Future] = set()

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def unbind_loop(self) -> None:
        self._loop = None

    def add_listener(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def remove_listener(self, fn: Listener) -> None:
        try:
            self._listeners.remove(fn)
        except ValueError:
            pass

    def connect(self, shop_id: str, ws: WebSocket) -> None:
        self._sockets.setdefault(shop_id, set()).add(ws)

    def disconnect(self, shop_id: str, ws: WebSocket) -> None:
        room = self._sockets.get(shop_id)
        if not room:
            return
        room.discard(ws)
        if not room:
            self._sockets.pop(shop_id, None)

    def connection_count(self, shop_id: str) -> int:
        return len(self._sockets.get(shop_id, ()))

    def publish(self, shop_id: str, event: str, payload: Any) -> None:
        data = jsonable_encoder(payload, by_alias=True)
        for fn in list(self._listeners):
            try:
                fn(shop_id, event, data)
            except Exception:
                log.exception("event listener failed", extra={"event": event})
        if not self._sockets.get(shop_id):
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            log.debug("no event loop bound; dropping %s", event)
            return
        msg = {"event": event, "data": data}
        try:
            loop.call_soon_threadsafe(self._schedule, shop_id, msg)
        except RuntimeError:
            # loop shutting down
            pass

    def _schedule(self, shop_id: str, msg: dict) -> None:
        fut = asyncio.ensure_future(self._broadcast(shop_id, msg))
        self._pending.add(fut)
        fut.add_done_callback(self._pending.discard)

    async def _broadcast(self, shop_id: str, msg: dict) -> None:
        for ws in list(self._sockets.get(shop_id, ())):
            try:
                await ws.send_json(msg)
            except Exception:
                self.disconnect(shop_id, ws)


hub = EventHub()


def publish(shop_id: str, event: str, payload: Any) -> None:
    hub.publish(shop_id, event, payload)
