import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from apps.teashop.app.events import EventHub


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, msg):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(msg)


def test_hub_delivers_only_to_the_publishing_shop():
    hub = EventHub()
    a, b, dead = FakeSocket(), FakeSocket(), FakeSocket(fail=True)

    async def scenario():
        hub.bind_loop()
        hub.connect("1111", a)
        hub.connect("1111", dead)
        hub.connect("2222", b)
        hub.publish("1111", "new-order", {"orderNumber": "ORD2601010001"})
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert a.sent == [{"event": "new-order", "data": {"orderNumber": "ORD2601010001"}}]
    assert b.sent == []
    # failed sockets are dropped from the room
    assert hub.connection_count("1111") == 1


def test_publish_without_loop_or_sockets_never_raises():
    hub = EventHub()
    seen = []
    hub.add_listener(lambda shop, event, data: seen.append((shop, event, data)))
    hub.connect("1111", FakeSocket())
    hub.publish("1111", "low-stock-alert", {"item": "Milk"})
    assert seen == [("1111", "low-stock-alert", {"item": "Milk"})]


def test_failing_listener_does_not_break_publish():
    hub = EventHub()
    seen = []

    def bad(shop, event, data):
        raise ValueError("boom")

    hub.add_listener(bad)
    hub.add_listener(lambda shop, event, data: seen.append(event))
    hub.publish("1111", "order-deleted", {"orderId": "x"})
    assert seen == ["order-deleted"]


def test_disconnect_cleans_up_empty_rooms():
    hub = EventHub()
    ws = FakeSocket()
    hub.connect("1111", ws)
    hub.disconnect("1111", ws)
    hub.disconnect("1111", ws)
    assert hub.connection_count("1111") == 0


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/ws?token=bad") as ws:
            ws.receive_json()


def test_websocket_receives_own_shop_events(app, client, shop):
    menu = client.post(
        "/api/menu", json={"name": "Chai", "category": "tea", "price": 2, "cost": 1}, headers=shop.headers()
    ).json()
    with TestClient(app) as live:
        with live.websocket_connect(f"/api/ws?token={shop.token}") as ws:
            r = live.post(
                "/api/orders",
                json={"items": [{"menuItem": menu["id"], "quantity": 1}], "orderType": "takeaway", "paymentMethod": "cash"},
                headers=shop.headers(),
            )
            assert r.status_code == 201
            msg = ws.receive_json()
            assert msg["event"] == "new-order"
            assert msg["data"]["orderNumber"] == r.json()["orderNumber"]
