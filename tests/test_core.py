"""Tests for request context and log processors."""

import pytest

from onboarding_api.core.context import (
    clear_context,
    get_context,
    set_request_id,
    set_trace_id,
    set_user_id,
    set_user_role,
)
from onboarding_api.core.logging import add_context_processor, filter_sensitive_data
from onboarding_api.core.middleware import extract_traceparent


@pytest.fixture(autouse=True)
def _clean_context():
    clear_context()
    yield
    clear_context()


def test_context_skips_empty_values() -> None:
    set_request_id("req-1")

    assert get_context() == {"request_id": "req-1"}


def test_context_processor_keeps_explicit_values() -> None:
    set_request_id("req-1")
    set_user_id("user-1")
    set_user_role("pm")

    event = add_context_processor(None, "info", {"event": "x", "user_id": "other"})

    assert event["request_id"] == "req-1"
    assert event["user_role"] == "pm"
    assert event["user_id"] == "other"


def test_trace_id_reaches_log_events_until_cleared() -> None:
    set_trace_id(
        extract_traceparent("00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01")
    )

    event = add_context_processor(None, "info", {"event": "x"})
    assert event["trace_id"] == "4bf92f3577b34da6a3ce929d0e0e4736"

    clear_context()
    assert "trace_id" not in add_context_processor(None, "info", {"event": "y"})


def test_sensitive_values_masked() -> None:
    event = filter_sensitive_data(
        None,
        "info",
        {
            "event": "login",
            "access_token": "abcdefghij",
            "password": "abc",
            "nested": {"api_key": "12345678"},
            "email": "grace@example.com",
        },
    )

    assert event["access_token"] == "ab******ij"
    assert event["password"] == "***"
    assert event["nested"]["api_key"] == "12****78"
    assert event["email"] == "grace@example.com"


@pytest.mark.parametrize(
    "header,expected",
    [
        (
            "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
            "4bf92f3577b34da6a3ce929d0e0e4736",
        ),
        ("garbage", None),
        (None, None),
    ],
)
def test_extract_traceparent(header: str | None, expected: str | None) -> None:
    assert extract_traceparent(header) == expected

