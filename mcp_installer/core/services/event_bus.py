"""
EventBus — thread-safe, in-process pub/sub with bounded replay.

The installer core publishes everything an observer may want to show
(progress, log lines, the installed entry, terminal failures) through a
bus instance owned by the ``Installation`` session. The core never
imports a presentation layer; observers subscribe here.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer``, ``_listeners`` and
  ``_queues``.
- Listener callbacks run synchronously in publish order, outside the
  lock, each with its own deep copy of the event.
- Queue subscribers get their own ``queue.Queue``; a full queue drops
  that subscriber.

Message standard (v1)
─────────────────────
Every event is a dict with these fields::

    {
        "v": 1,                     # schema version
        "ts": 1739648400.123,       # timestamp
        "seq": 47,                  # monotonic sequence
        "type": "progress",         # progress | log | installed | failed
        "key": "mcp-foo-mcp",       # server entry id, or ""
        "data": { ... },            # JSON-mode payload
    }
"""

from __future__ import annotations

import copy
import logging
import queue
import threading
import time
from collections import deque
from typing import Any, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

Listener = Callable[[dict], None]


class EventBus:
    """Thread-safe, in-process pub/sub with bounded replay buffer.

    Parameters
    ----------
    buffer_size : int
        Maximum number of events kept for ``replay``.
    subscriber_queue_size : int
        Maximum backlog per queue subscriber before it is dropped.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 500,
        subscriber_queue_size: int = 1000,
    ) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._listeners: list[Listener] = []
        self._queues: list[queue.Queue[dict]] = []
        self._subscriber_queue_size = subscriber_queue_size

    # ── Properties ──────────────────────────────────────────────

    @property
    def seq(self) -> int:
        """Current sequence number (monotonically increasing)."""
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners) + len(self._queues)

    # ── Publishing ──────────────────────────────────────────────

    def publish(
        self,
        event_type: str,
        *,
        key: str = "",
        data: BaseModel | dict[str, Any] | None = None,
    ) -> dict:
        """Broadcast an event.

        Pydantic payloads are dumped in JSON mode, so observers only ever
        see plain data.

        Returns
        -------
        dict
            The full event dict with ``seq`` assigned.
        """
        if isinstance(data, BaseModel):
            payload = data.model_dump(mode="json")
        else:
            payload = copy.deepcopy(data or {})

        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": key,
                "data": payload,
            }
            self._buffer.append(event)

            dead: list[queue.Queue[dict]] = []
            for q in self._queues:
                try:
                    q.put_nowait(copy.deepcopy(event))
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._queues.remove(q)
                logger.info("Dropped unresponsive event subscriber (queue full)")

            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(copy.deepcopy(event))
            except Exception:
                logger.exception("Event listener failed on %s #%d", event_type, event["seq"])

        logger.debug("event %s key=%s seq=%d", event_type, key or "-", event["seq"])
        return event

    # ── Subscribing ─────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` for every future event. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def subscribe(self, *, since: int | None = None) -> queue.Queue[dict]:
        """Open a queue subscription.

        With ``since``, buffered events with ``seq > since`` are queued
        first, so a late subscriber can catch up.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)
        with self._lock:
            if since is not None:
                for event in self._buffer:
                    if event["seq"] > since:
                        try:
                            q.put_nowait(copy.deepcopy(event))
                        except queue.Full:
                            break
            self._queues.append(q)
        return q

    def unsubscribe(self, q: queue.Queue[dict]) -> None:
        with self._lock:
            if q in self._queues:
                self._queues.remove(q)

    def replay(self, since: int = 0, event_type: str | None = None) -> list[dict]:
        """Buffered events with ``seq > since``, optionally of one type."""
        with self._lock:
            return [
                copy.deepcopy(e) for e in self._buffer
                if e["seq"] > since and (event_type is None or e["type"] == event_type)
            ]
