"""
EventBus — thread-safe, in-process pub/sub with bounded replay.

This is the UI boundary of the installer.  The progress emitter and
the credential broker publish here; the web layer streams the bus
over SSE and the CLI attaches in-process listeners.

Publishing never blocks on delivery: subscriber queues are bounded
and a subscriber whose queue is full is dropped, and listener
exceptions are logged and swallowed per listener.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer``, ``_subscribers``,
  ``_listeners`` and ``_latest``.
- Each SSE subscriber gets its own ``queue.Queue``; the publisher
  pushes into all queues under the lock.
- Listeners are called outside the lock, on the publisher's thread.

Message standard (v1)
─────────────────────
Every event is a dict with these fields::

    {
        "v": 1,                     # schema version
        "ts": 1739648400.123,       # server timestamp
        "seq": 47,                  # monotonic sequence
        "type": "install-log",      # boundary event name
        "key": "",                  # resource identifier (token, ...)
        "data": { ... },            # event-specific payload
    }
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any, Generator

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_UNTRACKED_TYPES = frozenset({"sys:heartbeat", "sys:ready", "state:snapshot"})

Listener = Callable[[dict], None]


class EventBus:
    """Thread-safe, in-process pub/sub with bounded replay buffer.

    Parameters
    ----------
    buffer_size : int
        Maximum number of events to keep in the replay ring buffer.
        Clients that reconnect after their ``Last-Event-Id`` has been
        evicted receive a ``state:snapshot`` instead of a replay.
    subscriber_queue_size : int
        Maximum backlog per SSE client.  If a client can't consume
        fast enough, its queue fills and the subscriber is dropped.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 1000,
        subscriber_queue_size: int = 500,
    ) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._subscribers: list[queue.Queue[dict]] = []
        self._listeners: list[Listener] = []
        self._subscriber_queue_size = subscriber_queue_size
        self._instance_id: str = time.strftime("%Y-%m-%dT%H:%M:%S")
        self._latest: dict[str, dict] = {}  # event type → latest payload

    # ── Properties ──────────────────────────────────────────────

    @property
    def instance_id(self) -> str:
        """Server instance identifier (boot timestamp)."""
        return self._instance_id

    @property
    def seq(self) -> int:
        """Current sequence number (monotonically increasing)."""
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        """Number of active SSE subscribers."""
        with self._lock:
            return len(self._subscribers)

    def history(self, event_type: str | None = None) -> list[dict]:
        """Events still in the replay buffer, oldest first."""
        with self._lock:
            events = list(self._buffer)
        if event_type is None:
            return events
        return [e for e in events if e["type"] == event_type]

    # ── Publishing ──────────────────────────────────────────────

    def publish(
        self,
        event_type: str,
        *,
        key: str = "",
        data: dict[str, Any] | None = None,
        **kw: Any,
    ) -> dict:
        """Broadcast an event to every subscriber and listener.

        Parameters
        ----------
        event_type : str
            Boundary event name (``install-log``, ``credential-request``...).
        key : str
            Resource identifier.  Empty for most events.
        data : dict | None
            Event-specific payload.
        **kw :
            Additional top-level fields.

        Returns
        -------
        dict
            The full event dict with ``seq`` assigned.
        """
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": key,
                "data": data or {},
                **kw,
            }
            if event_type not in _UNTRACKED_TYPES:
                self._buffer.append(event)
                self._latest[event_type] = event["data"]

            dead: list[queue.Queue[dict]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive SSE subscriber (queue full)")

            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", event_type)

        if event_type != "sys:heartbeat":
            logger.debug("event %s key=%s seq=%d", event_type, key or "-", event["seq"])

        return event

    # ── In-process listeners ────────────────────────────────────

    def listen(self, callback: Listener) -> Callable[[], None]:
        """Attach a callback invoked for every published event.

        Returns a function that detaches the callback again.
        """
        with self._lock:
            self._listeners.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    # ── Subscribing (SSE) ───────────────────────────────────────

    def subscribe(
        self,
        *,
        since: int = 0,
        heartbeat_interval: float = 30.0,
    ) -> Generator[dict, None, None]:
        """Yield events for an SSE client.  Blocks between events.

        Parameters
        ----------
        since : int
            Sequence number to resume from (``Last-Event-Id``).
            Events with ``seq > since`` are replayed from the buffer.
            If ``since`` is 0 or too old for the buffer, a
            ``state:snapshot`` is sent instead.
        heartbeat_interval : float
            Seconds between heartbeat events when idle.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)
        need_snapshot = True

        with self._lock:
            if since > 0 and self._buffer:
                min_seq = self._buffer[0]["seq"]
                if since >= min_seq - 1:
                    need_snapshot = False
                    for event in self._buffer:
                        if event["seq"] > since:
                            try:
                                q.put_nowait(event)
                            except queue.Full:
                                need_snapshot = True
                                while not q.empty():
                                    try:
                                        q.get_nowait()
                                    except queue.Empty:
                                        break
                                break

            self._subscribers.append(q)

        logger.info(
            "SSE client connected (since=%d, snapshot=%s, subscribers=%d)",
            since, need_snapshot, len(self._subscribers),
        )

        try:
            yield self._make_event("sys:ready", {"instance_id": self._instance_id})

            if need_snapshot:
                yield self._make_event("state:snapshot", self.snapshot())

            while True:
                try:
                    yield q.get(timeout=heartbeat_interval)
                except queue.Empty:
                    yield self.publish("sys:heartbeat")
        finally:
            with self._lock:
                if q in self._subscribers:
                    self._subscribers.remove(q)
            logger.info("SSE client disconnected (subscribers=%d)", len(self._subscribers))

    # ── Snapshot ────────────────────────────────────────────────

    def snapshot(self) -> dict[str, dict]:
        """Latest payload per event type, for clients joining mid-run."""
        with self._lock:
            return {etype: dict(data) for etype, data in self._latest.items()}

    def clear(self) -> None:
        """Drop the replay buffer and snapshot.  Called at the start of each run."""
        with self._lock:
            self._buffer.clear()
            self._latest.clear()

    # ── Internal helpers ────────────────────────────────────────

    def _make_event(self, event_type: str, data: dict) -> dict:
        """Create a per-client event (NOT broadcast, NOT buffered)."""
        with self._lock:
            self._seq += 1
            return {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": "",
                "data": data,
            }


# ── Module-level default ────────────────────────────────────────

bus = EventBus()
"""The process-wide event bus.

Services take the bus as a constructor argument; this instance is what
the entrypoints pass in::

    from src.core.services.event_bus import bus
    bus.publish("install-log", data={"message": "..."})
"""
