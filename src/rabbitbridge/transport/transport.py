"""Topic publish/subscribe transport over a single broker channel."""

from __future__ import annotations

import concurrent.futures
import logging
import queue
import threading
from typing import Any, Callable, List, Optional, Sequence

from ..resource import Resource
from .base import (
    Channel,
    CloseError,
    DeclareError,
    Publisher,
    SendError,
    SerializationError,
    SubscribeError,
    Subscriber,
    TransportClosed,
)
from .codec import Codec, JsonCodec
from .subscription import Subscription
from .topics import DeliveredQueues


logger = logging.getLogger(__name__)

_OPEN = "open"
_CLOSED = "closed"
_BROKEN = "broken"


class Transport(Publisher, Subscriber):
    """Publish to and consume from named topics over one broker channel.

    A topic is a durable queue on the broker's default exchange. The channel
    is not safe for concurrent use, so the transport confines it to one
    dedicated thread: every broker operation is queued, and that thread runs
    it between dispatching deliveries. Synchronous methods wait for their
    queued operation; the ``*_async`` variants return a
    :class:`concurrent.futures.Future` immediately.

    Expected failures are raised (or carried by the future) as the typed
    exceptions of :mod:`rabbitbridge.transport.base`. Once :meth:`close`
    has been called every operation fails with :class:`TransportClosed`.
    """

    poll_interval = 0.5

    def __init__(self, channel: Channel, codec: Optional[Codec] = None):
        self.channel = channel
        self.codec = codec if codec is not None else JsonCodec()
        self.queues = DeliveredQueues()

        self._subscriptions = dict()
        self._subscriptions_lock = threading.Lock()

        self._outbox: queue.SimpleQueue = queue.SimpleQueue()
        self._state = _OPEN
        self._state_lock = threading.Lock()
        self._stopping = False
        self._failure: Optional[BaseException] = None
        self._close_future: Optional[concurrent.futures.Future] = None

        self._thread = threading.Thread(
            target=self._run, name="rabbitbridge-channel", daemon=True
        )
        self._thread.start()

    @classmethod
    def create_resource(cls, connector, codec: Optional[Codec] = None) -> Resource:
        """Return a :class:`Resource` that opens a channel through
        *connector*, wraps it in a :class:`Transport`, and closes that
        transport when the resource is disposed of."""

        def initializer() -> "Transport":
            return cls(connector.create_channel(), codec)

        def disposer(transport: "Transport") -> None:
            transport.close()

        return Resource.of(initializer, disposer)

    @property
    def is_open(self) -> bool:
        return self._state == _OPEN

    @property
    def subscriptions(self) -> List[Subscription]:
        with self._subscriptions_lock:
            return list(self._subscriptions.values())

    def delivered(self, topic: str) -> List[Any]:
        """Messages received and decoded on *topic* so far, in arrival order."""
        return self.queues.get(topic)

    # --- publishing ---
    def declare_topic(self, topic: str) -> None:
        _check_topic(topic)
        self._submit(self._declare, topic).result()

    def publish(self, topic: str, message: Any) -> None:
        self.publish_async(topic, message).result()

    def publish_async(self, topic: str, message: Any) -> concurrent.futures.Future:
        _check_topic(topic)
        return self._submit(self._publish, topic, message)

    def publish_multiple(self, topics: Sequence[str], message: Any) -> None:
        """Publish *message* to every topic in *topics*, in order.

        The message is serialized once. This is not all-or-nothing: if
        publishing to one topic fails, the topics before it have already
        received the message, nothing is rolled back, and the remaining
        topics are skipped. The raised :class:`PublishError` names the
        failing topic in its ``topic`` attribute.
        """
        topics = _check_topics(topics)
        self._submit(self._publish_multiple, topics, message).result()

    def publish_multiple_async(
        self, topics: Sequence[str], message: Any
    ) -> concurrent.futures.Future:
        """Asynchronous :meth:`publish_multiple`.

        Each topic's send is scheduled independently, so a failure on one
        topic does not prevent the later ones from being attempted. The
        returned future settles once every send has settled, carrying the
        first error in topic order, if any.
        """
        topics = _check_topics(topics)

        if not topics:
            return _completed(None)

        try:
            body = self._encode(topics[0], message)
        except SerializationError as exc:
            return _failed(exc)

        sends = [self._submit(self._send, topic, body) for topic in topics]
        return _chain(gather(sends), lambda results: None)

    # --- subscribing ---
    def subscribe(self, topic: str, handler: Callable[[Any], Any]) -> Subscription:
        """Declare *topic* and invoke *handler* with every decoded message.

        Returns once the consumer is registered. A handler that raises is
        logged as a :class:`HandlerError`; the subscription keeps running.
        """
        return self._subscribe(topic, handler, asynchronous=False).result()

    def subscribe_async(
        self, topic: str, handler: Callable[[Any], Any]
    ) -> concurrent.futures.Future:
        """Like :meth:`subscribe`, for a *handler* returning a future.

        The returned future resolves with the :class:`Subscription` once the
        consumer is registered. Per-message outcomes do not affect it; see
        :attr:`Subscription.first_message` for the first delivery.
        """
        return self._subscribe(topic, handler, asynchronous=True)

    def subscribe_to_multiple_topics(
        self, topics: Sequence[str], handler: Callable[[Any], Any]
    ) -> concurrent.futures.Future:
        """Call :meth:`subscribe_async` for each topic.

        Every topic gets a delivered queue up front. The returned future
        settles once all registrations have settled: with the list of
        subscriptions, or with the first error in topic order.
        """
        topics = _check_topics(topics)

        for topic in topics:
            self.queues.register(topic)

        return gather([self.subscribe_async(topic, handler) for topic in topics])

    # --- closing ---
    def close(self) -> None:
        self.close_async().result()

    def close_async(self) -> concurrent.futures.Future:
        """Close the channel. Deliveries stop abruptly; in-flight handlers
        are not waited for. Closing twice fails with :class:`CloseError`."""
        future: concurrent.futures.Future = concurrent.futures.Future()

        with self._state_lock:
            if self._state == _CLOSED:
                future.set_exception(CloseError("transport already closed"))
                return future

            inline = self._state == _BROKEN
            self._state = _CLOSED

            if threading.current_thread() is self._thread:
                self._stopping = True
                inline = True

            if not inline:
                # The channel thread closes the channel once its loop exits.
                self._close_future = future
                try:
                    self.channel.add_callback_threadsafe(self._request_stop)
                except Exception as exc:
                    self._failure = exc
                    inline = True
                    self._close_future = None

        if inline:
            # Either the event loop is gone or this is the channel thread.
            self._execute(future, self._close_channel, ())

        return future

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_open:
            self.close()

    def __repr__(self) -> str:
        return f"Transport(channel={self.channel!r}, state={self._state})"

    # --- channel thread ---
    def _run(self) -> None:
        try:
            while not self._stopping:
                self.channel.process_events(self.poll_interval)
        except Exception as exc:
            logger.error("Channel event loop failed: %r", exc)
            with self._state_lock:
                self._failure = exc
                if self._state == _OPEN:
                    self._state = _BROKEN
        finally:
            self._abandon_outbox()
            with self._state_lock:
                close_future = self._close_future

        if close_future is not None:
            self._execute(close_future, self._close_channel, ())

    def _request_stop(self) -> None:
        self._stopping = True

    def _flush(self) -> None:
        """Run every queued operation (called on the channel thread via
        add_callback_threadsafe)."""
        while True:
            try:
                future, function, args = self._outbox.get_nowait()
            except queue.Empty:
                break
            self._execute(future, function, args)

    def _execute(self, future, function, args) -> None:
        if future.done() or not future.set_running_or_notify_cancel():
            return
        try:
            result = function(*args)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    def _submit(self, function, *args) -> concurrent.futures.Future:
        future: concurrent.futures.Future = concurrent.futures.Future()

        with self._state_lock:
            if self._state != _OPEN:
                future.set_exception(self._closed_error())
                return future

            if threading.current_thread() is not self._thread:
                self._outbox.put((future, function, args))
                try:
                    self.channel.add_callback_threadsafe(self._flush)
                except Exception as exc:
                    error = TransportClosed("channel is no longer accepting work")
                    error.__cause__ = exc
                    future.set_exception(error)
                return future

        self._execute(future, function, args)
        return future

    def _abandon_outbox(self) -> None:
        while True:
            try:
                future, _function, _args = self._outbox.get_nowait()
            except queue.Empty:
                break
            if not future.done():
                future.set_exception(self._closed_error())

    def _closed_error(self) -> TransportClosed:
        error = TransportClosed("transport is closed")
        if self._failure is not None:
            error.__cause__ = self._failure
        return error

    def _declare(self, topic: str) -> None:
        try:
            self.channel.declare_topic(topic)
        except Exception as exc:
            raise DeclareError(topic, f"could not declare topic {topic!r}: {exc}") from exc

    def _encode(self, topic: str, message: Any) -> bytes:
        try:
            return self.codec.encode(message)
        except Exception as exc:
            raise SerializationError(
                topic, f"could not serialize message for {topic!r}: {exc}"
            ) from exc

    def _send(self, topic: str, body: bytes) -> None:
        self._declare(topic)
        try:
            self.channel.publish(topic, body)
        except Exception as exc:
            raise SendError(topic, f"broker rejected publish to {topic!r}: {exc}") from exc
        logger.debug("Published %d bytes to %s", len(body), topic)

    def _publish(self, topic: str, message: Any) -> None:
        self._send(topic, self._encode(topic, message))

    def _publish_multiple(self, topics: List[str], message: Any) -> None:
        if not topics:
            return

        body = self._encode(topics[0], message)
        for topic in topics:
            self._send(topic, body)

    def _subscribe(self, topic, handler, asynchronous) -> concurrent.futures.Future:
        _check_topic(topic)
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {type(handler)}")

        self.queues.register(topic)
        subscription = Subscription(self, topic, handler, asynchronous)
        future = self._submit(self._register, subscription)

        def _cleanup(registered: concurrent.futures.Future) -> None:
            if registered.cancelled() or registered.exception() is not None:
                subscription._shutdown()

        future.add_done_callback(_cleanup)
        return future

    def _register(self, subscription: Subscription) -> Subscription:
        topic = subscription.topic
        self._declare(topic)

        try:
            consumer_tag = self.channel.consume(topic, subscription._dispatch)
        except Exception as exc:
            raise SubscribeError(topic, f"could not consume from {topic!r}: {exc}") from exc

        subscription.consumer_tag = consumer_tag
        with self._subscriptions_lock:
            self._subscriptions[consumer_tag] = subscription

        logger.info("Subscribed to %s (consumer tag %s)", topic, consumer_tag)
        return subscription

    def _cancel(self, subscription: Subscription) -> concurrent.futures.Future:
        return self._submit(self._unregister, subscription)

    def _unregister(self, subscription: Subscription) -> None:
        subscription._shutdown()

        with self._subscriptions_lock:
            registered = self._subscriptions.pop(subscription.consumer_tag, None)

        if registered is None:
            return

        topic = subscription.topic
        try:
            self.channel.cancel(subscription.consumer_tag)
        except Exception as exc:
            raise SubscribeError(topic, f"could not cancel consumer on {topic!r}: {exc}") from exc

        logger.info("Cancelled subscription to %s", topic)

    def _close_channel(self) -> None:
        with self._subscriptions_lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()

        for subscription in subscriptions:
            subscription._shutdown()

        try:
            self.channel.close()
        except Exception as exc:
            raise CloseError(f"could not close channel: {exc}") from exc

        logger.info("Transport closed")


def gather(futures: Sequence[concurrent.futures.Future]) -> concurrent.futures.Future:
    """Return a future that settles once every future in *futures* has.

    It resolves with the list of results, in order, or carries the first
    exception in order. A cancelled input counts as a
    :class:`concurrent.futures.CancelledError`.
    """
    futures = list(futures)
    combined: concurrent.futures.Future = concurrent.futures.Future()
    combined.set_running_or_notify_cancel()

    if not futures:
        combined.set_result([])
        return combined

    remaining = [len(futures)]
    lock = threading.Lock()

    def _settled(_future: concurrent.futures.Future) -> None:
        with lock:
            remaining[0] -= 1
            if remaining[0]:
                return

        for future in futures:
            error = _exception(future)
            if error is not None:
                combined.set_exception(error)
                return

        combined.set_result([future.result() for future in futures])

    for future in futures:
        future.add_done_callback(_settled)

    return combined


def _exception(future: concurrent.futures.Future) -> Optional[BaseException]:
    if future.cancelled():
        return concurrent.futures.CancelledError()
    return future.exception()


def _chain(future: concurrent.futures.Future, function) -> concurrent.futures.Future:
    chained: concurrent.futures.Future = concurrent.futures.Future()
    chained.set_running_or_notify_cancel()

    def _done(settled: concurrent.futures.Future) -> None:
        error = _exception(settled)
        if error is None:
            chained.set_result(function(settled.result()))
        else:
            chained.set_exception(error)

    future.add_done_callback(_done)
    return chained


def _completed(value) -> concurrent.futures.Future:
    future: concurrent.futures.Future = concurrent.futures.Future()
    future.set_result(value)
    return future


def _failed(error: BaseException) -> concurrent.futures.Future:
    future: concurrent.futures.Future = concurrent.futures.Future()
    future.set_exception(error)
    return future


def _check_topic(topic: str) -> None:
    if not isinstance(topic, str) or not topic:
        raise ValueError(f"topic must be a non-empty string, got {topic!r}")


def _check_topics(topics: Sequence[str]) -> List[str]:
    if isinstance(topics, (str, bytes)):
        raise TypeError("topics must be a sequence of topic names, not a string")

    topics = list(topics)
    for topic in topics:
        _check_topic(topic)
    return topics
