"""
Realtime Notifier

Implements the Publish-Subscribe pattern for order lifecycle events.
Connected observer sessions hold a bounded in-memory queue; administrators are
placed in the ``admin`` room and receive ``order:new`` and
``order:status-updated`` events as they happen.

Delivery is best-effort and at-most-once: there is no replay, no
acknowledgement and no persistence. A disconnected admin misses events until
they reconnect and re-poll the order listing.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

from storefront.auth import Principal
from storefront.config import Config
from storefront.observability import increment_counter, set_gauge

ADMIN_ROOM = "admin"

EVENT_ADMIN_CONNECTED = "admin:connected"
EVENT_ORDER_NEW = "order:new"
EVENT_ORDER_STATUS_UPDATED = "order:status-updated"


@dataclass
class RealtimeEvent:
    """A single named event with a JSON payload."""
    name: str
    payload: Dict[str, Any]

    def to_sse(self) -> str:
        """Frame the event for a text/event-stream response."""
        data = json.dumps(self.payload, default=str)
        return f"event: {self.name}\ndata: {data}\n\n"


@dataclass
class ObserverSession:
    id: str
    principal: Principal
    queue: "Queue[RealtimeEvent]"
    rooms: Set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RealtimeNotifier:
    """
    Process-wide registry of observer sessions and the rooms they joined.

    Architectural Pattern: Publish-Subscribe (Publisher side for order events)
    - Order lifecycle operations publish to the ``admin`` room
    - Each session drains its own queue (see the events blueprint)
    """

    _instance: Optional["RealtimeNotifier"] = None
    _lock: Lock = Lock()

    def __new__(cls) -> "RealtimeNotifier":
        """Singleton pattern so every request publishes into the same registry."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._sessions: Dict[str, ObserverSession] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._queue_size: int = Config.NOTIFIER_QUEUE_SIZE
        self.logger = logging.getLogger(__name__)
        self._initialized = True

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------
    def connect(self, principal: Principal) -> str:
        """
        Register an observer session for an authenticated principal.

        Administrators join the admin room immediately and get a greeting event.
        Everyone else is registered without any room membership.
        """
        session = ObserverSession(
            id=uuid4().hex,
            principal=principal,
            queue=Queue(maxsize=self._queue_size),
        )
        with self._lock:
            self._sessions[session.id] = session
            self._update_session_gauge()

        self.logger.info("Observer %s connected (%s)", principal.id, principal.role)

        if principal.is_admin and self.join_room(session.id, ADMIN_ROOM):
            self._deliver(
                session,
                RealtimeEvent(
                    EVENT_ADMIN_CONNECTED,
                    {
                        "message": "Connected to admin notifications",
                        "userId": str(principal.id),
                    },
                ),
            )
        return session.id

    def join_room(self, session_id: str, room: str) -> bool:
        """Add a session to a room. Only admins may join the admin room."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if room == ADMIN_ROOM and not session.principal.is_admin:
                self.logger.warning(
                    "Rejected admin room join for non-admin user %s",
                    session.principal.id,
                )
                return False
            session.rooms.add(room)
            self._rooms.setdefault(room, set()).add(session_id)
        return True

    def disconnect(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return
            for room in session.rooms:
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(session_id)
                    if not members:
                        del self._rooms[room]
            self._update_session_gauge()
        self.logger.info("Observer %s disconnected", session.principal.id)

    def room_members(self, room: str) -> List[str]:
        with self._lock:
            return sorted(self._rooms.get(room, set()))

    def is_connected(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ------------------------------------------------------------------
    # Publishing and consuming
    # ------------------------------------------------------------------
    def publish(self, room: str, event_name: str, payload: Dict[str, Any]) -> int:
        """
        Fan an event out to every session currently in ``room``.

        Returns:
            Number of sessions the event was queued for.
        """
        event = RealtimeEvent(event_name, payload)
        with self._lock:
            targets = [self._sessions[sid] for sid in self._rooms.get(room, set()) if sid in self._sessions]

        delivered = sum(1 for session in targets if self._deliver(session, event))
        increment_counter("realtime_events_published_total", labels={"event": event_name, "room": room})
        self.logger.info(
            "Published %s to room %s (%d/%d sessions)",
            event_name,
            room,
            delivered,
            len(targets),
        )
        return delivered

    def listen(self, session_id: str, timeout: float) -> Optional[RealtimeEvent]:
        """Wait up to ``timeout`` seconds for the next event queued for a session."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None
        try:
            return session.queue.get(timeout=timeout)
        except Empty:
            return None

    def _deliver(self, session: ObserverSession, event: RealtimeEvent) -> bool:
        try:
            session.queue.put_nowait(event)
        except Full:
            increment_counter("realtime_events_dropped_total", labels={"event": event.name})
            self.logger.warning(
                "Dropped %s for observer %s: queue full",
                event.name,
                session.principal.id,
                extra={"session_id": session.id},
            )
            return False
        return True

    def _update_session_gauge(self) -> None:
        set_gauge("realtime_sessions_connected", len(self._sessions))

    # ------------------------------------------------------------------
    # Order lifecycle events
    # ------------------------------------------------------------------
    def emit_new_order(self, order_payload: Dict[str, Any]) -> int:
        return self.publish(
            ADMIN_ROOM,
            EVENT_ORDER_NEW,
            {
                "order": order_payload,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "sound": True,
            },
        )

    def emit_order_status_update(self, order_payload: Dict[str, Any]) -> int:
        return self.publish(
            ADMIN_ROOM,
            EVENT_ORDER_STATUS_UPDATED,
            {
                "order": order_payload,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    def reset(self) -> None:
        """Testing helper."""
        with self._lock:
            self._sessions.clear()
            self._rooms.clear()
            self._update_session_gauge()
