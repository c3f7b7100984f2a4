"""
SSE event stream endpoint.

Provides ``GET /api/events`` — a Server-Sent Events stream of the
installer's boundary events (``install-log``, ``install-error``,
``download-progress``, ``credential-request``, ``installer-path``).

Wire format (Server-Sent Events)::

    event: install-log
    id: 47
    data: {"v":1,"ts":1739648400.123,"seq":47,"type":"install-log","key":"","data":{...}}

The client connects with ``EventSource('/api/events')``.  On
reconnect, ``Last-Event-Id`` is sent automatically by the browser,
enabling replay from the bus's ring buffer.
"""

from __future__ import annotations

import json

from flask import Blueprint, Response, current_app, request

events_bp = Blueprint("events", __name__)


@events_bp.route("/events")
def event_stream():  # type: ignore[no-untyped-def]
    """SSE endpoint — streams bus events to the client.

    Query params:
        since (int): Resume from this sequence number. Overridden
            by ``Last-Event-Id`` header if present.
        heartbeat (float): Seconds between idle heartbeats.
    """
    bus = current_app.config["EVENT_BUS"]
    since = request.args.get("since", 0, type=int)
    heartbeat = request.args.get("heartbeat", 30.0, type=float)

    last_event_id = request.headers.get("Last-Event-Id")
    if last_event_id is not None:
        try:
            since = max(since, int(last_event_id))
        except (ValueError, TypeError):
            pass

    def generate():  # type: ignore[no-untyped-def]
        for event in bus.subscribe(since=since, heartbeat_interval=heartbeat):
            yield (
                f"event: {event['type']}\n"
                f"id: {event['seq']}\n"
                f"data: {json.dumps(event, default=str)}\n\n"
            )

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
