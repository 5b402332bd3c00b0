"""Transport layer: broker channel, codec, and the topic transport."""

from .base import (
    Channel,
    CloseError,
    DeclareError,
    DeserializationError,
    HandlerError,
    PublishError,
    Publisher,
    SendError,
    SerializationError,
    SubscribeError,
    Subscriber,
    TransportClosed,
    TransportConnectionError,
    TransportError,
)
from .codec import Codec, JsonCodec
from .rabbitmq import Connector, PikaChannel
from .subscription import Subscription
from .topics import DeliveredQueues
from .transport import Transport, gather
