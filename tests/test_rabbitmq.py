from unittest import mock

import pika
import pika.exceptions
import pytest

import rabbitbridge
from rabbitbridge.transport import PikaChannel, TransportConnectionError
from rabbitbridge.transport import rabbitmq


@pytest.fixture
def credentials():
    return rabbitbridge.Credentials(host='rabbit', port=5673,
                                    username='bridge', password='secret',
                                    virtual_host='test')


def test_parameters(credentials):

    connector = rabbitbridge.Connector(credentials, heartbeat=30)
    parameters = connector.parameters()

    assert parameters.host == 'rabbit'
    assert parameters.port == 5673
    assert parameters.virtual_host == 'test'
    assert parameters.heartbeat == 30
    assert parameters.credentials.username == 'bridge'
    assert parameters.credentials.password == 'secret'


def test_connector_from_environment(monkeypatch):

    monkeypatch.setenv('RABBITBRIDGE_AMQP_HOST', 'env-broker')
    connector = rabbitbridge.Connector()

    assert connector.credentials.host == 'env-broker'


def test_connection_refused(credentials, monkeypatch):

    refused = mock.Mock(side_effect=pika.exceptions.AMQPConnectionError('refused'))
    monkeypatch.setattr(rabbitmq.pika, 'BlockingConnection', refused)

    connector = rabbitbridge.Connector(credentials)

    with pytest.raises(TransportConnectionError) as caught:
        connector.create_channel()

    assert isinstance(caught.value.__cause__, pika.exceptions.AMQPConnectionError)
    assert 'rabbit:5673' in str(caught.value)


def test_create_channel(credentials, monkeypatch):

    connection = mock.Mock()
    monkeypatch.setattr(rabbitmq.pika, 'BlockingConnection',
                        mock.Mock(return_value=connection))

    connector = rabbitbridge.Connector(credentials, prefetch_count=10)
    channel = connector.create_channel()

    assert isinstance(channel, PikaChannel)
    pika_channel = connection.channel.return_value
    pika_channel.basic_qos.assert_called_once_with(prefetch_count=10)
    pika_channel.confirm_delivery.assert_called_once_with()


def test_create_channel_without_confirms(credentials, monkeypatch):

    connection = mock.Mock()
    monkeypatch.setattr(rabbitmq.pika, 'BlockingConnection',
                        mock.Mock(return_value=connection))

    connector = rabbitbridge.Connector(credentials, confirm_delivery=False)
    connector.create_channel()

    pika_channel = connection.channel.return_value
    pika_channel.basic_qos.assert_not_called()
    pika_channel.confirm_delivery.assert_not_called()


def test_channel_negotiation_failure(credentials, monkeypatch):

    connection = mock.Mock()
    connection.is_open = True
    connection.channel.side_effect = pika.exceptions.ChannelClosed(406, 'PRECONDITION_FAILED')
    monkeypatch.setattr(rabbitmq.pika, 'BlockingConnection',
                        mock.Mock(return_value=connection))

    with pytest.raises(TransportConnectionError):
        rabbitbridge.Connector(credentials).create_channel()

    connection.close.assert_called_once_with()


def test_declare_topic():

    connection = mock.Mock()
    pika_channel = mock.Mock()
    channel = PikaChannel(connection, pika_channel)

    channel.declare_topic('server')

    pika_channel.queue_declare.assert_called_once_with(
        queue='server', durable=True, exclusive=False, auto_delete=False)


def test_publish():

    pika_channel = mock.Mock()
    channel = PikaChannel(mock.Mock(), pika_channel)

    channel.publish('server', b'"hello"')

    kwargs = pika_channel.basic_publish.call_args.kwargs
    assert kwargs['exchange'] == ''
    assert kwargs['routing_key'] == 'server'
    assert kwargs['body'] == b'"hello"'
    assert kwargs['properties'].delivery_mode == 2


def test_consume_passes_body():

    pika_channel = mock.Mock()
    pika_channel.basic_consume.return_value = 'ctag-1'
    channel = PikaChannel(mock.Mock(), pika_channel)
    bodies = list()

    tag = channel.consume('server', bodies.append)

    assert tag == 'ctag-1'
    kwargs = pika_channel.basic_consume.call_args.kwargs
    assert kwargs['queue'] == 'server'
    assert kwargs['auto_ack'] is True

    callback = kwargs['on_message_callback']
    callback(pika_channel, mock.Mock(), pika.BasicProperties(), b'payload')

    assert bodies == [b'payload']


def test_close_order():

    manager = mock.Mock()
    manager.connection.is_open = True
    channel = PikaChannel(manager.connection, manager.channel)

    channel.close()

    assert manager.mock_calls == [mock.call.channel.close(),
                                  mock.call.connection.close()]


def test_close_connection_after_channel_failure():

    connection = mock.Mock()
    connection.is_open = True
    pika_channel = mock.Mock()
    pika_channel.close.side_effect = pika.exceptions.ChannelWrongStateError('closed')

    channel = PikaChannel(connection, pika_channel)

    with pytest.raises(pika.exceptions.ChannelWrongStateError):
        channel.close()

    connection.close.assert_called_once_with()


def test_event_loop_passthrough():

    connection = mock.Mock()
    channel = PikaChannel(connection, mock.Mock())
    callback = mock.Mock()

    channel.process_events(0.5)
    channel.add_callback_threadsafe(callback)

    connection.process_data_events.assert_called_once_with(time_limit=0.5)
    connection.add_callback_threadsafe.assert_called_once_with(callback)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
