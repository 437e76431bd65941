"""Tests for the session wire codec."""

from __future__ import annotations

import msgpack
import pytest

from edgeattach.session.errors import ProtocolDecodeError, SizeExceeded
from edgeattach.session.message import (
    MAX_PAYLOAD,
    Message,
    MessageType,
    decode,
    encode,
)


class TestEncodeDecode:
    def test_round_trip(self):
        msg = Message(
            type=MessageType.STDOUT,
            data=b"hello\r\n",
            target_id="msvc-1",
            session_id="exec-1",
            timestamp=1718000000000,
        )
        assert decode(encode(msg)) == msg

    def test_round_trip_binary_payload(self):
        msg = Message.new(MessageType.STDIN, bytes(range(256)), "t", "s")
        assert decode(encode(msg)).data == bytes(range(256))

    def test_wire_field_names(self):
        raw = encode(Message(type=1, data=b"x", target_id="t", session_id="s", timestamp=5))
        fields = msgpack.unpackb(raw, raw=False)
        assert fields == {
            "type": 1,
            "data": b"x",
            "microserviceUuid": "t",
            "execId": "s",
            "timestamp": 5,
        }

    def test_new_stamps_time(self):
        msg = Message.new(MessageType.CLOSE)
        assert msg.timestamp > 0
        assert msg.data == b""


class TestPayloadLimit:
    def test_exact_limit_encodes(self):
        msg = Message.new(MessageType.STDOUT, b"a" * MAX_PAYLOAD)
        assert len(decode(encode(msg)).data) == MAX_PAYLOAD

    def test_over_limit_raises(self):
        msg = Message.new(MessageType.STDOUT, b"a" * (MAX_PAYLOAD + 1))
        with pytest.raises(SizeExceeded, match="exceeds maximum"):
            encode(msg)


class TestDecodeErrors:
    @pytest.mark.parametrize("raw", [b"", b"\xc1", b"\x01\x02"])
    def test_not_msgpack(self, raw):
        with pytest.raises(ProtocolDecodeError):
            decode(raw)

    def test_not_a_map(self):
        with pytest.raises(ProtocolDecodeError, match="expected map"):
            decode(msgpack.packb([1, 2, 3]))

    def test_bad_type_field(self):
        with pytest.raises(ProtocolDecodeError, match="invalid message type"):
            decode(msgpack.packb({"type": "stdout"}))

    def test_bad_data_field(self):
        with pytest.raises(ProtocolDecodeError, match="invalid message data"):
            decode(msgpack.packb({"type": 1, "data": 42}))

    @pytest.mark.parametrize("msg_type", [10, 42, 255, -1])
    def test_unknown_type(self, msg_type):
        with pytest.raises(ProtocolDecodeError, match="unknown message type"):
            decode(msgpack.packb({"type": msg_type, "data": b"x"}, use_bin_type=True))

    def test_oversized_payload(self):
        raw = msgpack.packb({"type": 1, "data": b"x" * (MAX_PAYLOAD + 10)}, use_bin_type=True)
        with pytest.raises(SizeExceeded):
            decode(raw)

    def test_payload_at_limit(self):
        raw = msgpack.packb({"type": 1, "data": b"x" * MAX_PAYLOAD}, use_bin_type=True)
        assert len(decode(raw).data) == MAX_PAYLOAD


class TestDecodeLeniency:
    def test_missing_fields_default(self):
        msg = decode(msgpack.packb({"type": 4}))
        assert msg == Message(type=4)

    def test_nil_data(self):
        assert decode(msgpack.packb({"type": 1, "data": None})).data == b""

    def test_string_data(self):
        assert decode(msgpack.packb({"type": 1, "data": "héllo"})).data == "héllo".encode()

    def test_unknown_fields_ignored(self):
        raw = msgpack.packb({"type": 6, "data": b"line", "future": {"x": 1}}, use_bin_type=True)
        assert decode(raw).is_log_line()


class TestPredicates:
    @pytest.mark.parametrize(
        "msg_type, predicate",
        [
            (MessageType.STDIN, "is_stdin"),
            (MessageType.STDOUT, "is_stdout"),
            (MessageType.STDERR, "is_stderr"),
            (MessageType.CONTROL, "is_control"),
            (MessageType.CLOSE, "is_close"),
            (MessageType.ACTIVATION, "is_activation"),
            (MessageType.LOG_LINE, "is_log_line"),
            (MessageType.LOG_START, "is_log_start"),
            (MessageType.LOG_STOP, "is_log_stop"),
            (MessageType.LOG_ERROR, "is_log_error"),
        ],
    )
    def test_exactly_one_predicate_true(self, msg_type, predicate):
        msg = Message(type=msg_type)
        names = [n for n in dir(msg) if n.startswith("is_")]
        assert [n for n in names if getattr(msg, n)()] == [predicate]
