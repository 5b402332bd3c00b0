import threading

from rabbitbridge.transport import DeliveredQueues


def test_register_keeps_existing():

    queues = DeliveredQueues()
    queues.append('server', 'first')
    queues.register('server')
    queues.register('client')

    assert queues.get('server') == ['first']
    assert queues.get('client') == []
    assert sorted(queues.topics()) == ['client', 'server']
    assert 'client' in queues
    assert len(queues) == 2


def test_unknown_topic():

    queues = DeliveredQueues()

    assert queues.get('nowhere') == []
    assert 'nowhere' not in queues


def test_snapshot_is_a_copy():

    queues = DeliveredQueues()
    queues.append('server', 1)

    snapshot = queues.get('server')
    snapshot.append(2)

    assert queues.get('server') == [1]


def test_concurrent_appends():

    # Several writers per topic, several topics, one start line. Nothing may
    # be lost, and each writer's own messages stay in the order it sent them.

    queues = DeliveredQueues()
    topics = ('t0', 't1', 't2')
    writers = 4
    count = 200
    start = threading.Barrier(len(topics) * writers, timeout=5)

    def write(topic, writer):
        start.wait()
        for sequence in range(count):
            queues.append(topic, (writer, sequence))

    threads = list()
    for topic in topics:
        for writer in range(writers):
            threads.append(threading.Thread(target=write, args=(topic, writer)))

    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for topic in topics:
        messages = queues.get(topic)
        assert len(messages) == writers * count

        for writer in range(writers):
            sequence = [number for who, number in messages if who == writer]
            assert sequence == list(range(count))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
