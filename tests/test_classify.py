"""Tests for session failure classification."""

from __future__ import annotations

import importlib

import pytest

from edgeattach.session.classify import classify, extract_close_reason
from edgeattach.session.errors import (
    ConnectFailure,
    NotConnected,
    PolicyViolation,
    RemoteClosure,
)

# The package re-exports the classify() function under the submodule's name.
c = importlib.import_module("edgeattach.session.classify")


class TestPolicyViolation:
    @pytest.mark.parametrize(
        "reason, expected",
        [
            ("No available exec session for this microservice", c.MSG_NO_EXEC_SESSION),
            ("No available log session", c.MSG_NO_LOG_SESSION),
            ("Microservice has already active exec session", c.MSG_ANOTHER_USER_CONNECTED),
            ("Microservice already has an active session", c.MSG_ANOTHER_USER_CONNECTED),
            ("Timeout waiting for agent connection", c.MSG_TIMEOUT_WAITING_FOR_AGENT),
            ("Authentication failed", c.MSG_AUTHENTICATION_FAILED),
            ("Microservice is not running", c.MSG_MICROSERVICE_NOT_RUNNING),
            ("Agent is not running", c.MSG_AGENT_NOT_RUNNING),
            ("Microservice exec is not enabled", c.MSG_EXEC_NOT_ENABLED),
            ("Insufficient permissions", c.MSG_INSUFFICIENT_PERMISSIONS),
            ("Only SRE can access system microservices", c.MSG_ONLY_SRE_ACCESS),
        ],
    )
    def test_known_reasons(self, reason, expected):
        assert classify(PolicyViolation(reason)) == expected

    def test_case_insensitive(self):
        assert classify(PolicyViolation("AGENT IS NOT RUNNING.")) == c.MSG_AGENT_NOT_RUNNING

    def test_unknown_reason(self):
        assert classify(PolicyViolation("something new")) == c.MSG_POLICY_VIOLATION

    def test_no_reason(self):
        assert classify(PolicyViolation()) == c.MSG_POLICY_VIOLATION

    def test_plain_text_error(self):
        err = RuntimeError('websocket: close 1008 (policy violation): Agent is not running')
        assert classify(err) == c.MSG_AGENT_NOT_RUNNING


class TestOtherCodes:
    @pytest.mark.parametrize(
        "code, expected",
        [
            (1006, "Connection lost unexpectedly"),
            (1009, "Message too large"),
            (1011, "Server error occurred"),
        ],
    )
    def test_simple_codes(self, code, expected):
        assert classify(RemoteClosure(code)) == expected

    def test_code_from_text(self):
        assert classify(RuntimeError("websocket: close 1006 (abnormal closure)")) == (
            "Connection lost unexpectedly"
        )

    def test_connect_failure(self):
        assert classify(ConnectFailure("failed to connect: refused")) == "Failed to connect to server"

    def test_connect_failure_with_status(self):
        err = ConnectFailure("failed to connect", status_code=403)
        assert classify(err) == "Failed to connect to server (HTTP 403)"

    def test_passthrough(self):
        assert classify(NotConnected("not connected")) == "not connected"

    def test_none(self):
        assert classify(None) == ""


class TestExtractCloseReason:
    def test_reason_label(self):
        assert extract_close_reason("close 1008: reason: Agent is not running.") == "Agent is not running"

    def test_policy_violation_label(self):
        assert extract_close_reason("close 1008 (policy violation): Bad token.") == "Bad token"

    def test_last_quoted(self):
        text = 'websocket: close 1008 "first" then "Authentication failed"'
        assert extract_close_reason(text) == "Authentication failed"

    def test_after_code_colon(self):
        assert extract_close_reason("close 1008 (x): Microservice is not running") == (
            "Microservice is not running"
        )

    def test_after_code_remainder(self):
        assert extract_close_reason("close 1008 go away") == "go away"

    def test_remainder_mentioning_websocket_is_dropped(self):
        assert extract_close_reason("close 1008 websocket gone") == ""

    def test_reason_label_wins_over_quotes(self):
        text = 'close 1008 "quoted" reason: labelled'
        assert extract_close_reason(text) == "labelled"
