""" Broker connection settings. The defaults describe a local development
    broker; anything else should come from the environment or be passed
    explicitly by the caller.
"""

import dataclasses
import os


DEFAULT_HOST = 'localhost'
DEFAULT_PORT = 5672
DEFAULT_USERNAME = 'admin'
DEFAULT_PASSWORD = 'admin'
DEFAULT_VIRTUAL_HOST = '/'

ENVIRONMENT_PREFIX = 'RABBITBRIDGE_AMQP_'


@dataclasses.dataclass(frozen=True)
class Credentials:
    """ Host, port, and login details used by a
        :class:`rabbitbridge.transport.rabbitmq.Connector` to reach the
        broker.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: str = dataclasses.field(default=DEFAULT_PASSWORD, repr=False)
    virtual_host: str = DEFAULT_VIRTUAL_HOST

    def __post_init__(self):

        if not self.host:
            raise ValueError('the broker host must be specified')

        port = int(self.port)
        if port < 1 or port > 65535:
            raise ValueError('invalid broker port: ' + str(self.port))

        # Frozen dataclass; bypass the guard to store the normalized port.
        object.__setattr__(self, 'port', port)


    @classmethod
    def from_environment(cls, environ=None):
        """ Build a :class:`Credentials` instance from RABBITBRIDGE_AMQP_HOST,
            RABBITBRIDGE_AMQP_PORT, RABBITBRIDGE_AMQP_USER,
            RABBITBRIDGE_AMQP_PASSWORD and RABBITBRIDGE_AMQP_VHOST. Any
            variable that is not set falls back to the development default.
        """

        if environ is None:
            environ = os.environ

        def setting(name, default):
            return environ.get(ENVIRONMENT_PREFIX + name, default)

        port = setting('PORT', DEFAULT_PORT)

        try:
            port = int(port)
        except ValueError:
            raise ValueError('invalid broker port: ' + repr(port)) from None

        return cls(host=setting('HOST', DEFAULT_HOST),
                   port=port,
                   username=setting('USER', DEFAULT_USERNAME),
                   password=setting('PASSWORD', DEFAULT_PASSWORD),
                   virtual_host=setting('VHOST', DEFAULT_VIRTUAL_HOST))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
