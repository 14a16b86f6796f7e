"""Server-Sent Events transport for the realtime notifier."""
from __future__ import annotations

import logging

from flask import Blueprint, Response

from storefront.auth import require_principal
from storefront.config import Config
from storefront.services.notification_service import RealtimeNotifier

events_bp = Blueprint("events", __name__, url_prefix="/api/events")

logger = logging.getLogger(__name__)


@events_bp.route("/stream", methods=["GET"])
def stream():
    principal = require_principal()
    notifier = RealtimeNotifier()
    session_id = notifier.connect(principal)
    keepalive = Config.NOTIFIER_KEEPALIVE_SECONDS

    def generate():
        try:
            yield ": connected\n\n"
            while notifier.is_connected(session_id):
                event = notifier.listen(session_id, timeout=keepalive)
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                yield event.to_sse()
        finally:
            notifier.disconnect(session_id)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
