"""Transport interface.

This is the (small) contract that broker channels and transport clients
follow. The broker-facing :class:`Channel` is kept apart from the
:class:`~rabbitbridge.transport.transport.Transport` so the transport logic
remains broker-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportConnectionError(TransportError):
    """The connector could not establish a connection or channel."""


class TransportClosed(TransportError):
    """An operation was issued against a transport that is already closed."""


class CloseError(TransportError):
    """The channel could not be closed, or was already closed."""


class HandlerError(TransportError):
    """A subscriber's handler failed while processing a message."""

    def __init__(self, topic: str, message: str):
        super().__init__(message)
        self.topic = topic


class PublishError(TransportError):
    """A message could not be published to *topic*."""

    def __init__(self, topic: str, message: str):
        super().__init__(message)
        self.topic = topic


class SubscribeError(TransportError):
    """A subscription to *topic* could not be established or used."""

    def __init__(self, topic: str, message: str):
        super().__init__(message)
        self.topic = topic


class DeclareError(PublishError, SubscribeError):
    """The broker refused to declare the topic's queue."""


class SerializationError(PublishError):
    """The codec could not encode an outgoing message."""


class SendError(PublishError):
    """The broker rejected a publish."""


class DeserializationError(SubscribeError):
    """The codec could not decode an incoming message."""


class Channel(ABC):
    """Minimal broker capability consumed by a transport.

    A channel is not safe for concurrent use. Apart from
    :meth:`add_callback_threadsafe`, every method is only ever called from
    the one thread that drives :meth:`process_events`.
    """

    @abstractmethod
    def declare_topic(self, topic: str) -> None:
        """Declare a durable, non-exclusive, non-auto-delete queue. Idempotent."""

    @abstractmethod
    def publish(self, topic: str, body: bytes) -> None:
        """Send *body* to *topic*, returning once the broker accepted it."""

    @abstractmethod
    def consume(self, topic: str, on_deliver: Callable[[bytes], None]) -> str:
        """Register an auto-ack consumer and return its consumer tag."""

    @abstractmethod
    def cancel(self, consumer_tag: str) -> None:
        """Stop the consumer identified by *consumer_tag*."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the channel and its connection."""

    @abstractmethod
    def process_events(self, time_limit: Optional[float] = None) -> None:
        """Dispatch deliveries and queued callbacks for up to *time_limit* sec."""

    @abstractmethod
    def add_callback_threadsafe(self, callback: Callable[[], Any]) -> None:
        """Ask the event-processing thread to invoke *callback*."""

    @property
    def is_open(self) -> bool:
        """Whether the channel is currently usable."""
        return False


class Publisher(ABC):
    """Client role that sends messages to topics."""

    @abstractmethod
    def publish(self, topic: str, message: Any) -> None:
        """Publish *message* to *topic*, blocking until the broker accepts it."""

    @abstractmethod
    def publish_async(self, topic: str, message: Any):
        """Schedule a publish and return a future for its outcome."""


class Subscriber(ABC):
    """Client role that consumes messages from topics."""

    @abstractmethod
    def subscribe(self, topic: str, handler: Callable[[Any], Any]):
        """Register a blocking *handler* for every message on *topic*."""

    @abstractmethod
    def subscribe_async(self, topic: str, handler: Callable[[Any], Any]):
        """Register a future-returning *handler* for every message on *topic*."""
