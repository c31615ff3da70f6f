import pytest

from pyprobe.probe.icmp import (
    ICMP_ECHO_REPLY,
    ICMP_ECHO_REQUEST,
    Echo,
    ParseError,
    checksum,
    ipv4_payload,
    marshal_echo,
    marshal_echo_request,
    parse_message,
)


def test_request_checksum_verifies():
    packet = marshal_echo_request(0x1234, 7, b'\x00\x01\x02\x03\x04\x05\x06\x07')

    assert ICMP_ECHO_REQUEST == packet[0]
    assert 0 == packet[1]
    # Сумма по сообщению с корректным полем checksum дает 0
    assert 0 == checksum(packet)


def test_odd_length_checksum_verifies():
    packet = marshal_echo_request(1, 1, b'abc')
    assert 0 == checksum(packet)


def test_sequence_is_truncated_to_16_bits():
    packet = marshal_echo_request(0, 0x10005, b'')
    assert 5 == parse_message(packet).body.seq


def test_parse_echo_reply():
    packet = marshal_echo(ICMP_ECHO_REPLY, 42, 3, b'payload!')

    msg = parse_message(packet)
    assert msg.is_echo_reply
    assert Echo(id=42, seq=3, data=b'payload!') == msg.body


def test_parse_request_is_not_a_reply():
    msg = parse_message(marshal_echo_request(1, 2, b'12345678'))
    assert not msg.is_echo_reply
    assert 2 == msg.body.seq


def test_parse_other_type_keeps_raw_body():
    # Destination unreachable (3), port unreachable (3)
    packet = bytes([3, 3, 0, 0, 0, 0, 0, 0, 0xAA, 0xBB])

    msg = parse_message(packet)
    assert 3 == msg.type
    assert 3 == msg.code
    assert not msg.is_echo_reply
    assert isinstance(msg.body, bytes)


@pytest.mark.parametrize("data", [b'', b'\x00', b'\x00\x00\x00\x00\x00\x00\x00'])
def test_parse_truncated_raises(data):
    with pytest.raises(ParseError):
        parse_message(data)


def test_ipv4_payload_strips_header_by_ihl():
    icmp = marshal_echo(ICMP_ECHO_REPLY, 1, 1, b'12345678')
    header = bytes([0x46]) + bytes(23)  # IHL = 6 -> 24 байта

    assert icmp == ipv4_payload(header + icmp)


def test_ipv4_payload_leaves_short_data():
    assert b'\x45\x00' == ipv4_payload(b'\x45\x00')
