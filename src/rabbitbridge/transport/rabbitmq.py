"""RabbitMQ connector and channel backed by pika."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import pika
import pika.exceptions

from ..config import Credentials
from .base import Channel, TransportConnectionError


logger = logging.getLogger(__name__)

# Persistent delivery, so durable queues survive a broker restart.
_DELIVERY_MODE = 2


class PikaChannel(Channel):
    """A :class:`Channel` wrapping one pika blocking connection and channel.

    The channel owns its connection: closing the channel also closes the
    connection it was opened on.
    """

    def __init__(self, connection: pika.BlockingConnection, channel):
        self._connection = connection
        self._channel = channel

    @property
    def is_open(self) -> bool:
        return self._connection.is_open and self._channel.is_open

    def declare_topic(self, topic: str) -> None:
        self._channel.queue_declare(
            queue=topic,
            durable=True,
            exclusive=False,
            auto_delete=False,
        )

    def publish(self, topic: str, body: bytes) -> None:
        # With publisher confirms enabled this blocks until the broker acks,
        # raising UnroutableError or NackError when it does not.
        self._channel.basic_publish(
            exchange="",
            routing_key=topic,
            body=body,
            properties=pika.BasicProperties(delivery_mode=_DELIVERY_MODE),
            mandatory=True,
        )

    def consume(self, topic: str, on_deliver: Callable[[bytes], None]) -> str:
        def _on_message(_ch, _method, _properties, body: bytes) -> None:
            on_deliver(body)

        return self._channel.basic_consume(
            queue=topic,
            on_message_callback=_on_message,
            auto_ack=True,
        )

    def cancel(self, consumer_tag: str) -> None:
        self._channel.basic_cancel(consumer_tag)

    def close(self) -> None:
        try:
            self._channel.close()
        finally:
            if self._connection.is_open:
                self._connection.close()
                logger.info("RabbitMQ connection closed")

    def process_events(self, time_limit: Optional[float] = None) -> None:
        self._connection.process_data_events(time_limit=time_limit)

    def add_callback_threadsafe(self, callback: Callable[[], Any]) -> None:
        self._connection.add_callback_threadsafe(callback)


class Connector:
    """Open broker channels from a set of :class:`Credentials`.

    Every call to :meth:`create_channel` opens a fresh connection; there is
    no pooling, and the caller owns the returned channel.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        heartbeat: int = 600,
        blocked_connection_timeout: float = 300,
        prefetch_count: Optional[int] = None,
        confirm_delivery: bool = True,
    ):
        if credentials is None:
            credentials = Credentials.from_environment()

        self.credentials = credentials
        self.heartbeat = heartbeat
        self.blocked_connection_timeout = blocked_connection_timeout
        self.prefetch_count = prefetch_count
        self.confirm_delivery = confirm_delivery

    def parameters(self) -> pika.ConnectionParameters:
        credentials = self.credentials
        return pika.ConnectionParameters(
            host=credentials.host,
            port=credentials.port,
            virtual_host=credentials.virtual_host,
            credentials=pika.PlainCredentials(
                credentials.username, credentials.password
            ),
            heartbeat=self.heartbeat,
            blocked_connection_timeout=self.blocked_connection_timeout,
        )

    def create_channel(self) -> PikaChannel:
        host = self.credentials.host
        port = self.credentials.port

        try:
            connection = pika.BlockingConnection(self.parameters())
        except pika.exceptions.AMQPError as exc:
            logger.error("Could not connect to RabbitMQ at %s:%s: %r", host, port, exc)
            raise TransportConnectionError(
                f"could not connect to AMQP broker at {host}:{port}"
            ) from exc

        try:
            channel = connection.channel()
            if self.prefetch_count is not None:
                channel.basic_qos(prefetch_count=self.prefetch_count)
            if self.confirm_delivery:
                channel.confirm_delivery()
        except pika.exceptions.AMQPError as exc:
            logger.error("Channel negotiation with %s:%s failed: %r", host, port, exc)
            if connection.is_open:
                connection.close()
            raise TransportConnectionError(
                f"could not open a channel on {host}:{port}"
            ) from exc

        logger.info("Connected to RabbitMQ at %s:%s", host, port)
        return PikaChannel(connection, channel)
