"""Subscription handles returned by the transport."""

from __future__ import annotations

import concurrent.futures
import inspect
import logging
import threading
from typing import Any, Callable, Optional

from ..result import Result
from .base import DeserializationError, HandlerError


logger = logging.getLogger(__name__)


class Subscription:
    """One registered consumer on a topic.

    Deliveries for a subscription are processed on its own single worker
    thread: the payload is decoded, appended to the transport's delivered
    queue for the topic, and handed to the handler. Message order on a topic
    is therefore preserved, while different subscriptions run concurrently.

    Delivery is auto-ack: the broker considers a message consumed before the
    handler runs. A failing handler is logged and counted, never redelivered,
    and never ends the subscription. A handler fails by raising, or by
    returning a failed :class:`rabbitbridge.result.Result`. An asynchronous
    handler must return a :class:`concurrent.futures.Future`, a
    :class:`~rabbitbridge.result.Result`, or None; anything else counts as
    a failure.

    :ivar first_message: a future that settles once the first delivery has
        been fully handled. It resolves with None even when that handler
        failed; it carries a :class:`DeserializationError` if the first
        payload could not be decoded.
    :ivar last_error: the most recent :class:`HandlerError` or
        :class:`DeserializationError`, if any.
    """

    def __init__(self, transport, topic: str, handler: Callable[[Any], Any],
                 asynchronous: bool = False):
        self.transport = transport
        self.topic = topic
        self.handler = handler
        self.asynchronous = asynchronous

        self.consumer_tag: Optional[str] = None
        self.received = 0
        self.failures = 0
        self.last_error: Optional[Exception] = None
        self.first_message: concurrent.futures.Future = concurrent.futures.Future()

        self._active = True
        self._lock = threading.RLock()
        self.workers = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"rabbitbridge-{topic}"
        )

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving messages on this subscription."""
        self.cancel_async().result()

    def cancel_async(self) -> concurrent.futures.Future:
        return self.transport._cancel(self)

    # --- internal ---
    def _dispatch(self, body: bytes) -> None:
        """Called on the channel thread for every delivery."""
        if not self._active:
            return

        try:
            self.workers.submit(self._deliver, body)
        except RuntimeError:
            # Executor shut down between the check above and the submit.
            logger.debug("Dropped delivery on %s after shutdown", self.topic)

    def _deliver(self, body: bytes) -> None:
        try:
            message = self.transport.codec.decode(body)
        except Exception as exc:
            error = DeserializationError(
                self.topic, f"could not decode message on {self.topic!r}: {exc}"
            )
            error.__cause__ = exc
            self._record(error)
            logger.error("Dropping undecodable message on %s: %r", self.topic, exc)
            self._settle(error)
            return

        self.transport.queues.append(self.topic, message)
        self.received += 1

        if self.asynchronous:
            self._handle_async(message)
        else:
            self._handle(message)

    def _handle(self, message: Any) -> None:
        try:
            outcome = self.handler(message)
        except Exception as exc:
            self._handler_failed(exc)
        else:
            self._check_outcome(outcome)
        self._settle()

    def _handle_async(self, message: Any) -> None:
        try:
            pending = self.handler(message)
        except Exception as exc:
            self._handler_failed(exc)
            self._settle()
            return

        if pending is None or isinstance(pending, Result):
            self._check_outcome(pending)
            self._settle()
            return

        if not isinstance(pending, concurrent.futures.Future):
            if inspect.iscoroutine(pending):
                pending.close()
            self._handler_failed(TypeError(
                f"asynchronous handler returned {type(pending).__name__},"
                " expected a concurrent.futures.Future or None"
            ))
            self._settle()
            return

        pending.add_done_callback(self._handler_done)

    def _handler_done(self, pending: concurrent.futures.Future) -> None:
        if pending.cancelled():
            self._handler_failed(concurrent.futures.CancelledError())
        else:
            exc = pending.exception()
            if exc is None:
                self._check_outcome(pending.result())
            else:
                self._handler_failed(exc)
        self._settle()

    def _check_outcome(self, outcome: Any) -> None:
        # A handler may report failure by returning a failed Result, as a
        # LockMapper-wrapped handler does.
        if isinstance(outcome, Result) and not outcome.ok:
            self._handler_failed(outcome.error)

    def _handler_failed(self, exc: BaseException) -> None:
        error = HandlerError(
            self.topic, f"message handler on {self.topic!r} failed: {exc!r}"
        )
        error.__cause__ = exc
        self._record(error)
        logger.error("Message handling error on %s: %r", self.topic, exc)

    def _record(self, error: Exception) -> None:
        with self._lock:
            self.failures += 1
            self.last_error = error

    def _settle(self, error: Optional[Exception] = None) -> None:
        # Only the first delivery settles the future.
        with self._lock:
            if self.first_message.done():
                return
            if error is None:
                self.first_message.set_result(None)
            else:
                self.first_message.set_exception(error)

    def _shutdown(self) -> None:
        self._active = False
        self.workers.shutdown(wait=False)

    def __repr__(self) -> str:
        return (
            f"Subscription(topic={self.topic!r}, consumer_tag={self.consumer_tag!r},"
            f" active={self._active}, received={self.received})"
        )
