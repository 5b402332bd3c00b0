import msgspec
import pytest

from rabbitbridge.transport import JsonCodec


class Reading(msgspec.Struct):
    sensor: str
    value: float


def test_encode():

    codec = JsonCodec()

    assert codec.encode('sync message') == b'"sync message"'
    assert codec.encode({'a': [1, 2]}) == b'{"a":[1,2]}'


def test_decode_untyped():

    codec = JsonCodec()

    assert codec.decode(b'{"a":[1,2],"b":null}') == {'a': [1, 2], 'b': None}
    assert codec.decode(b'"text"') == 'text'


def test_typed():

    codec = JsonCodec(Reading)
    payload = codec.encode(Reading('temp', 21.5))

    assert payload == b'{"sensor":"temp","value":21.5}'
    assert codec.decode(payload) == Reading('temp', 21.5)


def test_typed_validation():

    codec = JsonCodec(Reading)

    with pytest.raises(msgspec.ValidationError):
        codec.decode(b'{"sensor":"temp"}')


def test_malformed():

    codec = JsonCodec()

    with pytest.raises(msgspec.DecodeError):
        codec.decode(b'{not json')


def test_unencodable():

    codec = JsonCodec()

    with pytest.raises(TypeError):
        codec.encode(object())


def test_repr():
    assert repr(JsonCodec()) == 'JsonCodec(type=None)'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
