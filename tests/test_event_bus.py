"""
Tests for the event bus — publish, listeners, replay and snapshots.
"""

from __future__ import annotations

import threading

from src.core.services.event_bus import EventBus


class TestPublish:
    def test_event_shape(self):
        bus = EventBus()
        event = bus.publish("install-log", key="k", data={"message": "hi"})
        assert event["v"] == 1
        assert event["type"] == "install-log"
        assert event["key"] == "k"
        assert event["data"] == {"message": "hi"}
        assert event["seq"] == 1 == bus.seq

    def test_seq_monotonic(self):
        bus = EventBus()
        seqs = [bus.publish("x")["seq"] for _ in range(5)]
        assert seqs == [1, 2, 3, 4, 5]

    def test_history_filtered_by_type(self):
        bus = EventBus()
        bus.publish("a", data={"n": 1})
        bus.publish("b", data={"n": 2})
        bus.publish("a", data={"n": 3})
        assert [e["data"]["n"] for e in bus.history("a")] == [1, 3]
        assert len(bus.history()) == 3

    def test_heartbeats_not_buffered(self):
        bus = EventBus()
        bus.publish("sys:heartbeat")
        assert bus.history() == []

    def test_buffer_bounded(self):
        bus = EventBus(buffer_size=3)
        for i in range(10):
            bus.publish("x", data={"i": i})
        assert [e["data"]["i"] for e in bus.history()] == [7, 8, 9]

    def test_concurrent_publishers(self):
        bus = EventBus(buffer_size=10_000)

        def worker():
            for _ in range(200):
                bus.publish("x")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        seqs = [e["seq"] for e in bus.history()]
        assert sorted(seqs) == list(range(1, 801))


class TestListeners:
    def test_listener_receives_events(self):
        bus = EventBus()
        seen: list[str] = []
        bus.listen(lambda e: seen.append(e["type"]))
        bus.publish("a")
        bus.publish("b")
        assert seen == ["a", "b"]

    def test_unsubscribe(self):
        bus = EventBus()
        seen: list[dict] = []
        stop = bus.listen(seen.append)
        bus.publish("a")
        stop()
        stop()
        bus.publish("b")
        assert len(seen) == 1

    def test_failing_listener_isolated(self):
        bus = EventBus()
        seen: list[dict] = []

        def boom(_event):
            raise RuntimeError("listener bug")

        bus.listen(boom)
        bus.listen(seen.append)
        bus.publish("a")
        assert len(seen) == 1


class TestSubscribe:
    def test_fresh_client_gets_ready_and_snapshot(self):
        bus = EventBus()
        bus.publish("download-progress", data={"progress": 10, "total": 100})
        stream = bus.subscribe(heartbeat_interval=0.01)
        ready = next(stream)
        snapshot = next(stream)
        stream.close()
        assert ready["type"] == "sys:ready"
        assert snapshot["type"] == "state:snapshot"
        assert snapshot["data"]["download-progress"] == {"progress": 10, "total": 100}

    def test_replay_since(self):
        bus = EventBus()
        for i in range(4):
            bus.publish("install-log", data={"i": i})
        stream = bus.subscribe(since=2, heartbeat_interval=0.01)
        assert next(stream)["type"] == "sys:ready"
        replayed = [next(stream)["data"]["i"], next(stream)["data"]["i"]]
        stream.close()
        assert replayed == [2, 3]

    def test_live_event_delivered(self):
        bus = EventBus()
        stream = bus.subscribe(heartbeat_interval=0.01)
        next(stream)
        next(stream)
        assert bus.subscriber_count == 1
        bus.publish("install-log", data={"message": "live"})
        assert next(stream)["data"] == {"message": "live"}
        stream.close()
        assert bus.subscriber_count == 0

    def test_heartbeat_when_idle(self):
        bus = EventBus()
        stream = bus.subscribe(heartbeat_interval=0.01)
        next(stream)
        next(stream)
        assert next(stream)["type"] == "sys:heartbeat"
        stream.close()

    def test_slow_subscriber_dropped(self):
        bus = EventBus(subscriber_queue_size=2)
        stream = bus.subscribe(heartbeat_interval=0.01)
        next(stream)
        for _ in range(3):
            bus.publish("x")
        assert bus.subscriber_count == 0
        stream.close()


class TestClear:
    def test_clear_drops_history_and_snapshot(self):
        bus = EventBus()
        bus.publish("a", data={"x": 1})
        bus.clear()
        assert bus.history() == []
        assert bus.snapshot() == {}
