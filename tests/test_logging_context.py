"""Tests for logging context propagation."""

import threading

import pytest

from notification_engine.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


def test_empty_context():
    """Test that context starts empty."""
    assert get_log_context() == {}


def test_push_and_pop():
    """Test pushing fields and restoring the previous context."""
    token = push_log_context(log_id="3f2a", channel="email")
    assert get_log_context() == {"log_id": "3f2a", "channel": "email"}
    pop_log_context(token)
    assert get_log_context() == {}


def test_none_values_are_dropped():
    token = push_log_context(log_id="3f2a", user_id=None)
    assert get_log_context() == {"log_id": "3f2a"}
    pop_log_context(token)


def test_nested_push_overrides_and_restores():
    outer = push_log_context(notification_type="booking_confirmation", channel="email")
    inner = push_log_context(channel="sms")
    assert get_log_context() == {"notification_type": "booking_confirmation", "channel": "sms"}
    pop_log_context(inner)
    assert get_log_context()["channel"] == "email"
    pop_log_context(outer)


def test_get_returns_copy():
    push_log_context(log_id="3f2a")
    context = get_log_context()
    context["log_id"] = "changed"
    assert get_log_context()["log_id"] == "3f2a"


def test_context_manager_restores_on_exception():
    with pytest.raises(ValueError):
        with log_context(log_id="3f2a"):
            assert get_log_context() == {"log_id": "3f2a"}
            raise ValueError("boom")

    assert get_log_context() == {}


def test_context_manager_update():
    with log_context(notification_type="booking_confirmation") as ctx:
        ctx.update(log_id="3f2a", skipped=None)
        assert get_log_context() == {"notification_type": "booking_confirmation", "log_id": "3f2a"}

    assert get_log_context() == {}


def test_update_outside_block_raises():
    ctx = log_context(log_id="3f2a")
    with pytest.raises(RuntimeError):
        ctx.update(channel="sms")


def test_clear_log_context():
    push_log_context(log_id="3f2a")
    clear_log_context()
    assert get_log_context() == {}


def test_threads_do_not_share_context():
    seen = {}

    def worker():
        seen["before"] = get_log_context()
        with log_context(log_id="from-thread"):
            seen["inside"] = get_log_context()

    with log_context(log_id="main"):
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        assert get_log_context() == {"log_id": "main"}

    assert seen["before"] == {}
    assert seen["inside"] == {"log_id": "from-thread"}
