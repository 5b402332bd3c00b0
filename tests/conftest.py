import pytest

import rabbitbridge
import memorybroker


@pytest.fixture
def broker():
    return memorybroker.MemoryBroker()


@pytest.fixture
def channel(broker):
    return broker.channel()


@pytest.fixture
def transport(channel):

    transport = rabbitbridge.Transport(channel)

    yield transport

    if transport.is_open:
        transport.close()


class StaticConnector:
    """ Connector handing out channels on an in-memory broker.
    """

    def __init__(self, broker):
        self.broker = broker
        self.created = list()

    def create_channel(self):
        channel = self.broker.channel()
        self.created.append(channel)
        return channel


@pytest.fixture
def connector(broker):
    return StaticConnector(broker)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
