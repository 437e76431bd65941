"""Tests for log streaming, tail options and session URLs."""

from __future__ import annotations

import pytest

from edgeattach.logs.config import LogConfigError, LogTailConfig, parse_rfc3339
from edgeattach.logs.stream import LogStreamController, LogStreamState, render_log_line
from edgeattach.session import endpoints
from edgeattach.session.errors import RemoteClosure
from edgeattach.session.message import Message, MessageType
from edgeattach.session.transport import SessionTransport

from fakes import FakeOutput


@pytest.fixture
def transport(connector):
    t = SessionTransport("agent-1", connector=connector)
    t.connect("ws://controller/api/v3/iofog/agent-1/logs")
    return t


def _log(msg_type: MessageType, data: bytes = b"") -> Message:
    return Message.new(msg_type, data)


# ------------------------------------------------------------------ #
# Stream controller
# ------------------------------------------------------------------ #


class TestRenderLogLine:
    def test_adds_newline(self):
        assert render_log_line(b"started") == b"started\n"

    def test_keeps_existing_newline(self):
        assert render_log_line(b"started\n") == b"started\n"

    def test_empty_line(self):
        assert render_log_line(b"") == b"\n"


class TestLogStreamController:
    def test_start_lines_stop(self, transport, fake_conn):
        fake_conn.feed(_log(MessageType.LOG_START, b'{"sessionId": "s1"}'))
        for line in (b"one", b"two\n", b""):
            fake_conn.feed(_log(MessageType.LOG_LINE, line))
        fake_conn.feed(_log(MessageType.LOG_STOP))

        output = FakeOutput()
        stream = LogStreamController(transport, output=output)
        assert stream.start() is None
        assert output.getvalue() == b"one\ntwo\n\n"
        assert stream.state is LogStreamState.DONE
        assert transport.done.is_set()

    def test_log_error_is_printed_not_raised(self, transport, fake_conn):
        fake_conn.feed(_log(MessageType.LOG_ERROR, b"container not found"))
        output = FakeOutput()
        assert LogStreamController(transport, output=output).start() is None
        assert output.text() == "Error: container not found\n"

    def test_log_error_default_text(self, transport, fake_conn):
        fake_conn.feed(_log(MessageType.LOG_ERROR))
        output = FakeOutput()
        LogStreamController(transport, output=output).start()
        assert output.text() == "Error: Log streaming error occurred\n"

    def test_graceful_close(self, transport, fake_conn):
        fake_conn.feed(_log(MessageType.LOG_LINE, b"last"))
        fake_conn.feed_close(1000)
        output = FakeOutput()
        assert LogStreamController(transport, output=output).start() is None
        assert output.text() == "last\n"

    def test_abnormal_close_is_raised(self, transport, fake_conn):
        fake_conn.feed_close(1008, "No available log session")
        with pytest.raises(RemoteClosure) as info:
            LogStreamController(transport, output=FakeOutput()).start()
        assert info.value.code == 1008

    def test_non_log_frames_ignored(self, transport, fake_conn):
        fake_conn.feed(_log(MessageType.STDOUT, b"noise"))
        fake_conn.feed(_log(MessageType.LOG_LINE, b"real"))
        fake_conn.feed(_log(MessageType.LOG_STOP))
        output = FakeOutput()
        LogStreamController(transport, output=output).start()
        assert output.text() == "real\n"

    def test_cleanup_closes_once(self, transport, fake_conn):
        fake_conn.feed(_log(MessageType.LOG_STOP))
        stream = LogStreamController(transport, output=FakeOutput())
        stream.start()
        stream.stop()
        assert fake_conn.close_calls == 1
        assert [m.type for m in fake_conn.sent_messages()] == [MessageType.CLOSE]


# ------------------------------------------------------------------ #
# Tail options
# ------------------------------------------------------------------ #


class TestLogTailConfig:
    def test_defaults(self):
        cfg = LogTailConfig()
        assert (cfg.tail, cfg.follow, cfg.since, cfg.until) == (100, True, "", "")
        cfg.validate()

    def test_query_string_defaults(self):
        assert LogTailConfig().query_string() == "follow=true&tail=100"

    def test_query_string_full(self):
        cfg = LogTailConfig(tail=5, follow=False, since="2024-01-01T00:00:00Z", until="2024-01-02T00:00:00Z")
        assert cfg.query_string() == (
            "follow=false&since=2024-01-01T00%3A00%3A00Z&tail=5&until=2024-01-02T00%3A00%3A00Z"
        )

    @pytest.mark.parametrize("tail", [0, 10001, -1])
    def test_tail_out_of_range(self, tail):
        with pytest.raises(LogConfigError, match="tail must be between 1 and 10000"):
            LogTailConfig(tail=tail).validate()

    @pytest.mark.parametrize("tail", [1, 10000])
    def test_tail_bounds_accepted(self, tail):
        LogTailConfig(tail=tail).validate()

    def test_bad_since(self):
        with pytest.raises(LogConfigError, match="invalid since format"):
            LogTailConfig(since="yesterday").validate()

    def test_bad_until(self):
        with pytest.raises(LogConfigError, match="invalid until format"):
            LogTailConfig(until="2024-01-01").validate()

    def test_config_error_is_value_error(self):
        assert issubclass(LogConfigError, ValueError)

    @pytest.mark.parametrize(
        "value",
        [
            "2024-03-01T12:30:00Z",
            "2024-03-01T12:30:00+02:00",
            "2024-03-01T12:30:00.123456789Z",
            "2024-03-01t12:30:00.5-07:00",
        ],
    )
    def test_rfc3339_accepted(self, value):
        assert parse_rfc3339(value).tzinfo is not None

    @pytest.mark.parametrize("value", ["2024-03-01 12:30:00Z", "2024-03-01T12:30:00", "2024-13-01T00:00:00Z"])
    def test_rfc3339_rejected(self, value):
        with pytest.raises(ValueError):
            parse_rfc3339(value)


# ------------------------------------------------------------------ #
# Session URLs
# ------------------------------------------------------------------ #


class TestEndpoints:
    BASE = "https://controller.example.com:51121/api/v3"

    def test_scheme_rewrite(self):
        assert endpoints.to_ws_url("http://c:51121/api/v3/") == "ws://c:51121/api/v3"
        assert endpoints.to_ws_url(self.BASE) == "wss://controller.example.com:51121/api/v3"

    def test_exec_url(self):
        assert endpoints.exec_url(self.BASE, "m1") == (
            "wss://controller.example.com:51121/api/v3/microservices/exec/m1"
        )

    def test_agent_logs_url(self):
        url = endpoints.agent_logs_url("http://c:51121/api/v3", "a1", LogTailConfig(tail=10))
        assert url == "ws://c:51121/api/v3/iofog/a1/logs?follow=true&tail=10"

    def test_microservice_logs_url(self):
        assert endpoints.microservice_logs_url("http://c/api/v3", "m1") == "ws://c/api/v3/microservices/m1/logs"

    def test_system_microservice_logs_url(self):
        url = endpoints.microservice_logs_url("http://c/api/v3", "m1", LogTailConfig(), system=True)
        assert url == "ws://c/api/v3/microservices/system/m1/logs?follow=true&tail=100"
