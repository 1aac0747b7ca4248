"""
Realtime push tests.

Verifies:
- Room fan-out, bounded queues and close semantics of the broadcaster
- Room resolution and access checks for the event stream
- The stream endpoint delivers events emitted to the user's room
- Driver location updates reach the order tracking room
"""

import json

import pytest

from conftest import advance_to, auth_headers, place_order, token_for
from marketplace.realtime import (
    ADMIN_ROOM,
    RealtimeEvent,
    RoomBroadcaster,
    order_room,
    safe_emit,
    user_room,
)


# =============================================================================
# BROADCASTER
# =============================================================================


class TestRoomBroadcaster:
    def test_room_names(self):
        assert user_room("buyer", 7) == "buyer_7"
        assert order_room("ORD-1700000000000-1") == "order_tracking_ORD-1700000000000-1"

    def test_emit_reaches_only_room_members(self):
        hub = RoomBroadcaster()
        buyer = hub.subscribe(["buyer_1"])
        admin = hub.subscribe(["admin_9", ADMIN_ROOM])

        assert hub.emit_to_room("buyer_1", "new_notification", {"id": 1}) == 1
        assert hub.emit_to_room(ADMIN_ROOM, "new_order_placed", {"id": 2}) == 1
        assert hub.emit_to_room("seller_4", "new_notification", {"id": 3}) == 0

        assert [e.event for e in buyer.drain()] == ["new_notification"]
        events = admin.drain()
        assert [(e.room, e.payload) for e in events] == [(ADMIN_ROOM, {"id": 2})]

    def test_full_queue_drops_for_slow_subscriber_only(self):
        hub = RoomBroadcaster(queue_size=1)
        slow = hub.subscribe(["order_tracking_A"])
        assert hub.emit_to_room("order_tracking_A", "driver_location_update", {"n": 1}) == 1
        assert hub.emit_to_room("order_tracking_A", "driver_location_update", {"n": 2}) == 0
        assert slow.dropped == 1

        fresh = hub.subscribe(["order_tracking_A"])
        assert hub.emit_to_room("order_tracking_A", "driver_location_update", {"n": 3}) == 1
        assert fresh.get(timeout=0.1).payload == {"n": 3}

    def test_unsubscribe(self):
        hub = RoomBroadcaster()
        sub = hub.subscribe(["buyer_1"])
        assert hub.subscriber_count("buyer_1") == 1
        hub.unsubscribe(sub)
        assert hub.subscriber_count("buyer_1") == 0
        assert sub.closed
        assert hub.emit_to_room("buyer_1", "new_notification", {}) == 0

    def test_close_wakes_subscribers(self):
        hub = RoomBroadcaster()
        sub = hub.subscribe(["buyer_1"])
        hub.close()

        assert hub.is_closed
        assert sub.closed
        assert sub.get(timeout=1) is None
        assert hub.emit_to_room("buyer_1", "new_notification", {}) == 0

        late = hub.subscribe(["buyer_1"])
        assert late.closed

    def test_close_with_full_queue_still_queues_sentinel(self):
        hub = RoomBroadcaster(queue_size=2)
        sub = hub.subscribe(["buyer_1"])
        hub.emit_to_room("buyer_1", "new_notification", {"n": 1})
        hub.emit_to_room("buyer_1", "new_notification", {"n": 2})

        sub.close()

        assert sub.dropped == 1
        assert sub.get(timeout=1).payload == {"n": 2}
        assert sub.get(timeout=1) is None
        assert not sub.offer(RealtimeEvent(room="buyer_1", event="new_notification", payload={}))

    def test_close_is_idempotent(self):
        hub = RoomBroadcaster()
        hub.close()
        hub.close()
        assert hub.is_closed

    def test_get_times_out(self):
        sub = RoomBroadcaster().subscribe(["buyer_1"])
        assert sub.get(timeout=0.01) is None
        assert not sub.closed

    def test_sse_format(self):
        event = RealtimeEvent(room="buyer_1", event="order_status_update", payload={"status": "assigned"})
        text = event.to_sse()
        assert text.startswith("event: order_status_update\ndata: ")
        assert text.endswith("\n\n")
        data = json.loads(text.split("data: ", 1)[1])
        assert data["room"] == "buyer_1"
        assert data["payload"] == {"status": "assigned"}
        assert data["emitted_at"].endswith("Z")


class _ExplodingBroadcaster:
    def emit_to_room(self, room, event, payload):
        raise RuntimeError("socket gone")


class TestSafeEmit:
    def test_errors_are_swallowed(self):
        safe_emit(_ExplodingBroadcaster(), "buyer_1", "new_notification", {})

    def test_missing_broadcaster_is_noop(self):
        safe_emit(None, "buyer_1", "new_notification", {})


# =============================================================================
# ROOMS ENDPOINT
# =============================================================================


class TestRooms:
    def test_personal_room(self, client, db_session, buyer, buyer_headers):
        resp = client.get("/api/realtime/rooms", headers=buyer_headers)
        assert resp.status_code == 200
        assert resp.json["rooms"] == [f"buyer_{buyer.id}"]

    def test_admin_joins_admin_room(self, client, db_session, admin, admin_headers):
        resp = client.get("/api/realtime/rooms", headers=admin_headers)
        assert resp.json["rooms"] == [f"admin_{admin.id}", ADMIN_ROOM]

    def test_query_token(self, client, db_session, driver):
        resp = client.get(f"/api/realtime/rooms?token={token_for(driver)}")
        assert resp.status_code == 200
        assert resp.json["rooms"] == [f"driver_{driver.id}"]

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/realtime/rooms?token=expired")
        assert resp.status_code == 401

    def test_order_tracking_room(self, client, db_session, buyer, seller, inventory, buyer_headers):
        order = place_order(buyer, seller)
        resp = client.get(f"/api/realtime/rooms?orders={order.order_number}", headers=buyer_headers)
        assert resp.status_code == 200
        assert resp.json["rooms"][-1] == order_room(order.order_number)

    def test_other_users_order_is_not_found(self, client, db_session, buyer, other_buyer, seller, inventory):
        order = place_order(buyer, seller)
        headers = auth_headers(token_for(other_buyer))
        resp = client.get(f"/api/realtime/rooms?orders={order.order_number}", headers=headers)
        assert resp.status_code == 404

        resp = client.get("/api/realtime/rooms?orders=ORD-0-0", headers=headers)
        assert resp.status_code == 404


# =============================================================================
# STREAM
# =============================================================================


class TestStream:
    def test_stream_delivers_room_events(self, client, db_session, buyer, buyer_headers, broadcaster):
        room = user_room("buyer", buyer.id)
        resp = client.get("/api/realtime/stream", headers=buyer_headers, buffered=False)
        try:
            assert resp.status_code == 200
            assert resp.mimetype == "text/event-stream"
            chunks = iter(resp.response)

            ready = next(chunks)
            ready = ready.decode() if isinstance(ready, bytes) else ready
            assert ready.startswith("event: ready\n")
            assert room in ready
            assert broadcaster.subscriber_count(room) == 1

            assert broadcaster.emit_to_room(room, "new_notification", {"title": "Driver assigned"}) == 1
            pushed = next(chunks)
            pushed = pushed.decode() if isinstance(pushed, bytes) else pushed
            assert pushed.startswith("event: new_notification\n")
            assert "Driver assigned" in pushed
        finally:
            resp.close()

        assert broadcaster.subscriber_count(room) == 0

    def test_stream_requires_auth(self, client, db_session):
        assert client.get("/api/realtime/stream").status_code == 401


# =============================================================================
# ORDER TRACKING
# =============================================================================


class TestOrderTracking:
    def test_driver_location_reaches_tracking_room(self, client, db_session, buyer, seller, inventory,
                                                   driver, driver_headers, broadcaster):
        order = advance_to(place_order(buyer, seller), driver, "in_transit")
        sub = broadcaster.subscribe([order_room(order.order_number)])
        try:
            resp = client.post(
                "/api/driver/location",
                json={"latitude": 31.5210, "longitude": 74.3590},
                headers=driver_headers,
            )
            assert resp.status_code == 200
            events = sub.drain()
        finally:
            broadcaster.unsubscribe(sub)

        assert [e.event for e in events] == ["driver_location_update"]
        assert events[0].payload["order_number"] == order.order_number
        assert events[0].payload["latitude"] == pytest.approx(31.521)

    def test_no_tracking_before_pickup(self, client, db_session, buyer, seller, inventory, driver, driver_headers):
        advance_to(place_order(buyer, seller), driver, "assigned")
        resp = client.post("/api/driver/location", json={"latitude": 31.52, "longitude": 74.36}, headers=driver_headers)
        assert resp.json["tracked_orders"] == []


# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:
    def test_healthy(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"

    def test_closed_broadcaster_degrades(self, app, client, db_session, monkeypatch):
        closed = RoomBroadcaster()
        closed.close()
        monkeypatch.setitem(app.extensions, "broadcaster", closed)

        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
        assert resp.json["checks"]["realtime"]["status"] == "degraded"
