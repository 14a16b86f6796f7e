from __future__ import annotations

import json

from storefront.auth import Principal
from storefront.observability.metrics import get_counter_value
from storefront.services.notification_service import (
    ADMIN_ROOM,
    EVENT_ADMIN_CONNECTED,
    EVENT_ORDER_NEW,
    EVENT_ORDER_STATUS_UPDATED,
    RealtimeEvent,
    RealtimeNotifier,
)

ADMIN = Principal(id=1, role="admin", name="Admin")
SHOPPER = Principal(id=2, role="user", name="Shopper")


def _drain(notifier, session_id):
    events = []
    while True:
        event = notifier.listen(session_id, timeout=0.01)
        if event is None:
            return events
        events.append(event)


def test_notifier_is_a_singleton():
    assert RealtimeNotifier() is RealtimeNotifier()


def test_admin_joins_admin_room_and_gets_greeting():
    notifier = RealtimeNotifier()
    session_id = notifier.connect(ADMIN)

    assert notifier.room_members(ADMIN_ROOM) == [session_id]
    events = _drain(notifier, session_id)
    assert [event.name for event in events] == [EVENT_ADMIN_CONNECTED]
    assert events[0].payload["userId"] == "1"


def test_non_admin_gets_no_room_and_cannot_join_admin_room():
    notifier = RealtimeNotifier()
    session_id = notifier.connect(SHOPPER)

    assert notifier.join_room(session_id, ADMIN_ROOM) is False
    assert notifier.room_members(ADMIN_ROOM) == []
    notifier.emit_new_order({"orderNumber": "#1"})
    assert _drain(notifier, session_id) == []


def test_order_events_reach_every_admin_session():
    notifier = RealtimeNotifier()
    first = notifier.connect(ADMIN)
    second = notifier.connect(Principal(id=3, role="admin"))
    _drain(notifier, first)
    _drain(notifier, second)

    delivered = notifier.emit_new_order({"orderNumber": "#12345678001"})
    assert delivered == 2
    notifier.emit_order_status_update({"orderNumber": "#12345678001", "status": "accepted"})

    for session_id in (first, second):
        events = _drain(notifier, session_id)
        assert [event.name for event in events] == [EVENT_ORDER_NEW, EVENT_ORDER_STATUS_UPDATED]
        assert events[0].payload["sound"] is True
        assert events[0].payload["order"]["orderNumber"] == "#12345678001"
        assert "timestamp" in events[1].payload
        assert "sound" not in events[1].payload


def test_disconnected_sessions_miss_events():
    notifier = RealtimeNotifier()
    session_id = notifier.connect(ADMIN)
    notifier.disconnect(session_id)

    assert notifier.emit_new_order({"orderNumber": "#2"}) == 0
    assert notifier.room_members(ADMIN_ROOM) == []
    assert notifier.listen(session_id, timeout=0.01) is None


def test_full_queue_drops_events(monkeypatch):
    notifier = RealtimeNotifier()
    monkeypatch.setattr(notifier, "_queue_size", 1)
    session_id = notifier.connect(ADMIN)

    # The greeting already fills the single slot
    assert notifier.emit_new_order({"orderNumber": "#3"}) == 0
    assert get_counter_value("realtime_events_dropped_total") == 1
    assert [event.name for event in _drain(notifier, session_id)] == [EVENT_ADMIN_CONNECTED]


def test_event_is_framed_for_server_sent_events():
    frame = RealtimeEvent("order:new", {"order": {"id": 7}, "sound": True}).to_sse()

    name_line, data_line, *_ = frame.split("\n")
    assert name_line == "event: order:new"
    assert json.loads(data_line[len("data: "):]) == {"order": {"id": 7}, "sound": True}
    assert frame.endswith("\n\n")
