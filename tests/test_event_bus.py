"""
Tests for the event bus — envelopes, ordering, replay, isolation.
"""

import threading

from mcp_installer.core.models.events import LogEvent
from mcp_installer.core.services.event_bus import EventBus


class TestPublish:
    def test_envelope(self):
        bus = EventBus()
        event = bus.publish("log", key="mcp-foo", data=LogEvent(level="info", message="hi"))

        assert event["v"] == 1
        assert event["seq"] == 1
        assert event["type"] == "log"
        assert event["key"] == "mcp-foo"
        assert event["data"] == {"level": "info", "message": "hi", "step_id": None}
        assert isinstance(event["ts"], float)

    def test_sequence_is_monotonic(self):
        bus = EventBus()
        seqs = [bus.publish("progress")["seq"] for _ in range(5)]
        assert seqs == [1, 2, 3, 4, 5]
        assert bus.seq == 5

    def test_listeners_in_publish_order(self):
        bus = EventBus()
        seen: list[int] = []
        bus.add_listener(lambda e: seen.append(e["seq"]))
        for _ in range(3):
            bus.publish("log", data={"level": "info", "message": "x"})
        assert seen == [1, 2, 3]

    def test_listener_gets_a_copy(self):
        bus = EventBus()
        bus.add_listener(lambda e: e["data"].clear())
        received: list[dict] = []
        bus.add_listener(received.append)

        bus.publish("log", data={"message": "kept"})
        assert received[0]["data"] == {"message": "kept"}
        assert bus.replay()[0]["data"] == {"message": "kept"}

    def test_failing_listener_does_not_break_others(self):
        bus = EventBus()

        def broken(event):
            raise RuntimeError("observer bug")

        received: list[dict] = []
        bus.add_listener(broken)
        bus.add_listener(received.append)
        bus.publish("progress")
        assert len(received) == 1

    def test_unsubscribe_listener(self):
        bus = EventBus()
        received: list[dict] = []
        remove = bus.add_listener(received.append)
        bus.publish("a")
        remove()
        bus.publish("b")
        assert [e["type"] for e in received] == ["a"]
        assert bus.subscriber_count == 0


class TestQueuesAndReplay:
    def test_queue_subscriber(self):
        bus = EventBus()
        q = bus.subscribe()
        bus.publish("installed", key="mcp-foo")
        assert q.get_nowait()["key"] == "mcp-foo"

    def test_late_subscriber_catches_up(self):
        bus = EventBus()
        for _ in range(3):
            bus.publish("log")
        q = bus.subscribe(since=1)
        assert [q.get_nowait()["seq"], q.get_nowait()["seq"]] == [2, 3]

    def test_full_queue_is_dropped(self):
        bus = EventBus(subscriber_queue_size=1)
        bus.subscribe()
        bus.publish("a")
        bus.publish("b")
        assert bus.subscriber_count == 0

    def test_replay_filters(self):
        bus = EventBus(buffer_size=3)
        for t in ["log", "progress", "log", "failed"]:
            bus.publish(t)
        assert [e["seq"] for e in bus.replay()] == [2, 3, 4]
        assert [e["seq"] for e in bus.replay(event_type="log")] == [3]
        assert [e["seq"] for e in bus.replay(since=3)] == [4]

    def test_concurrent_publishers(self):
        bus = EventBus(buffer_size=1000)

        def worker():
            for _ in range(100):
                bus.publish("log")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        seqs = [e["seq"] for e in bus.replay()]
        assert seqs == list(range(1, 401))
