# Overview: In-process room broadcaster for realtime push (order tracking, notifications).

"""
Realtime Broadcaster

Rooms are plain string keys:
- "{role}_{user_id}"           personal room of one user (buyer_7, driver_3, ...)
- "order_tracking_{order_number}"  everyone following one order
- "admin_notifications"        all admins

DELIVERY: at-most-once, best effort. Each subscriber owns a bounded queue;
when it is full the event is dropped for that subscriber only. A broadcast
never raises into the caller.

LIFECYCLE: one broadcaster per app, created by create_app() and stored in
app.extensions["broadcaster"]. Services receive it as an explicit argument
(or fetch it with get_broadcaster()); close() wakes and detaches every
subscriber.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import dataclass, field

from flask import current_app

from .time_utils import utcnow, to_utc_z

logger = logging.getLogger(__name__)

ADMIN_ROOM = "admin_notifications"


def user_room(role: str, user_id: int) -> str:
    return f"{role}_{user_id}"


def order_room(order_number: str) -> str:
    return f"order_tracking_{order_number}"


@dataclass
class RealtimeEvent:
    room: str
    event: str
    payload: dict
    emitted_at: str = field(default_factory=lambda: to_utc_z(utcnow()))

    def to_sse(self) -> str:
        data = json.dumps({"room": self.room, "payload": self.payload, "emitted_at": self.emitted_at})
        return f"event: {self.event}\ndata: {data}\n\n"


class Subscription:
    """A client's view of the broadcaster: a set of rooms and a bounded inbox."""

    def __init__(self, rooms: set[str], maxsize: int):
        self.rooms = set(rooms)
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def offer(self, event: RealtimeEvent) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout: float | None = None) -> RealtimeEvent | None:
        """Next event, or None on timeout / close."""
        if self.closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return item

    def drain(self) -> list[RealtimeEvent]:
        events = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return events
            if item is not None:
                events.append(item)

    def close(self) -> None:
        self.closed = True
        # Wake a blocked reader; a full queue gives up its oldest event for the sentinel
        try:
            self._queue.put_nowait(None)
            return
        except queue.Full:
            pass
        try:
            self._queue.get_nowait()
            self.dropped += 1
        except queue.Empty:
            pass
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            logger.warning("Subscription queue refilled during close; reader wakes on timeout")


class RoomBroadcaster:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._rooms: dict[str, set[Subscription]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def init_app(self, app) -> None:
        self.queue_size = app.config.get("REALTIME_QUEUE_SIZE", self.queue_size)
        app.extensions["broadcaster"] = self

    @property
    def is_closed(self) -> bool:
        return self._closed

    def subscribe(self, rooms) -> Subscription:
        sub = Subscription(set(rooms), self.queue_size)
        with self._lock:
            if self._closed:
                sub.close()
                return sub
            for room in sub.rooms:
                self._rooms.setdefault(room, set()).add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            for room in sub.rooms:
                members = self._rooms.get(room)
                if members is None:
                    continue
                members.discard(sub)
                if not members:
                    del self._rooms[room]
        sub.close()

    def subscriber_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def emit_to_room(self, room: str, event: str, payload: dict) -> int:
        """Fan out one event; returns how many subscribers accepted it."""
        if self._closed:
            return 0
        with self._lock:
            members = list(self._rooms.get(room, ()))
        message = RealtimeEvent(room=room, event=event, payload=payload)
        delivered = 0
        for sub in members:
            if sub.offer(message):
                delivered += 1
            else:
                logger.debug("Dropped %s for a slow subscriber in %s", event, room)
        return delivered

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subs = {sub for members in self._rooms.values() for sub in members}
            self._rooms.clear()
        for sub in subs:
            sub.close()
        logger.info("Realtime broadcaster closed (%d subscribers detached)", len(subs))


def get_broadcaster() -> RoomBroadcaster:
    return current_app.extensions["broadcaster"]


def safe_emit(broadcaster: RoomBroadcaster | None, room: str, event: str, payload: dict) -> None:
    """Emit and log instead of raising; realtime push is never business critical."""
    if broadcaster is None:
        return
    try:
        broadcaster.emit_to_room(room, event, payload)
    except Exception:
        logger.exception("Realtime emit %s to %s failed", event, room)
