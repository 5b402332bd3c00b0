""" Topic-based publish/subscribe bridge for RabbitMQ. A :class:`Transport`
    publishes typed messages to named topics and registers handlers that
    consume them, in blocking and non-blocking flavors, over one broker
    channel whose lifetime is managed by a :class:`Resource`.
"""

# Utility components.

from . import config
from . import result
from . import resource
from . import lock

# Primary public-facing interfaces.

from . import transport

from .config import Credentials
from .lock import LockActionError, LockMapper, LockTimeout, Lockable
from .resource import Resource
from .result import Result
from .transport import Connector, JsonCodec, Subscription, Transport

__version__ = '0.1.0'

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
