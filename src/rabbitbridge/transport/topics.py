"""Per-topic record of delivered messages."""

from __future__ import annotations

import threading
from typing import Any, Dict, List


class _TopicQueue:
    """Append-only list of messages for one topic, with its own lock."""

    def __init__(self):
        self.lock = threading.Lock()
        self.messages: List[Any] = []

    def append(self, message: Any) -> None:
        with self.lock:
            self.messages.append(message)

    def snapshot(self) -> List[Any]:
        with self.lock:
            return list(self.messages)


class DeliveredQueues:
    """In-memory, order-preserving record of decoded messages, per topic.

    Each topic gets an independent container guarded by its own lock, so
    concurrent deliveries on different topics never contend, and deliveries
    on the same topic never lose an append. Containers are only ever created
    under the registry lock; the mapping itself is never replaced.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._queues: Dict[str, _TopicQueue] = {}

    def register(self, topic: str) -> None:
        """Make sure *topic* has a (possibly empty) queue. Existing entries
        are kept."""
        self._queue(topic)

    def append(self, topic: str, message: Any) -> None:
        self._queue(topic).append(message)

    def get(self, topic: str) -> List[Any]:
        """Return a copy of the messages delivered on *topic*, oldest first."""
        try:
            queue = self._queues[topic]
        except KeyError:
            return []
        return queue.snapshot()

    def topics(self) -> List[str]:
        with self._lock:
            return list(self._queues)

    def _queue(self, topic: str) -> _TopicQueue:
        try:
            return self._queues[topic]
        except KeyError:
            pass

        with self._lock:
            queue = self._queues.get(topic)
            if queue is None:
                queue = _TopicQueue()
                self._queues[topic] = queue
            return queue

    def __contains__(self, topic: str) -> bool:
        return topic in self._queues

    def __len__(self) -> int:
        return len(self._queues)
