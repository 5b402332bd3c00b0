"""Message codecs used by the transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import msgspec


class Codec(ABC):
    """Translate application messages to and from the bytes put on the wire.

    A transport calls a codec from several threads at once; implementations
    must not keep per-call state on the instance.
    """

    @abstractmethod
    def encode(self, message: Any) -> bytes:
        """Return the serialized form of *message*."""

    @abstractmethod
    def decode(self, data: bytes) -> Any:
        """Return the message represented by *data*."""


class JsonCodec(Codec):
    """JSON codec backed by msgspec.

    Without a *type* any JSON value is accepted and decoded into the
    matching builtin types. With a *type*, such as a :class:`msgspec.Struct`
    subclass or ``list[int]``, decoding validates the payload and returns
    that type; a payload that does not match raises
    :class:`msgspec.ValidationError`.
    """

    def __init__(self, type: Optional[Any] = None):
        self.type = type

    def encode(self, message: Any) -> bytes:
        return msgspec.json.encode(message)

    def decode(self, data: bytes) -> Any:
        if self.type is None:
            return msgspec.json.decode(data)
        return msgspec.json.decode(data, type=self.type)

    def __repr__(self) -> str:
        return f"JsonCodec(type={self.type!r})"
