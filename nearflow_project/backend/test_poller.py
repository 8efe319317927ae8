"""
Tests for cross-chain status polling
"""
import asyncio

import pytest

from intent_workflow.poller import StatusPoller, is_transient_error


def scripted(*responses):
    remaining = list(responses)

    async def query():
        response = remaining.pop(0)
        if isinstance(response, Exception):
            raise response
        return {"status": response}

    return query


def test_stops_at_first_terminal_status(clock):
    poller = StatusPoller(interval_seconds=5, timeout_seconds=60, clock=clock, sleep=clock.sleep)

    outcome = asyncio.run(poller.poll(scripted("PENDING_DEPOSIT", "PROCESSING", "SUCCESS")))

    assert outcome.timed_out is False
    assert outcome.attempts == 3
    assert outcome.latest_status == "SUCCESS"
    assert len(outcome.history) == 3
    assert clock.sleeps == [5, 5]
    assert outcome.to_dict()["history"][2] == {
        "attempt": 3, "status": "SUCCESS", "error": None, "elapsedSeconds": 10.0,
    }


def test_status_is_uppercased(clock):
    poller = StatusPoller(clock=clock, sleep=clock.sleep)
    outcome = asyncio.run(poller.poll(scripted("refunded")))
    assert outcome.latest_status == "REFUNDED"
    assert outcome.attempts == 1
    assert outcome.to_dict()["latestResponse"] == {"status": "refunded"}


def test_times_out_without_sleeping_past_deadline(clock):
    poller = StatusPoller(interval_seconds=4, timeout_seconds=10, clock=clock, sleep=clock.sleep)

    outcome = asyncio.run(poller.poll(scripted(*["PROCESSING"] * 10)))

    assert outcome.timed_out is True
    assert outcome.attempts == 4
    assert outcome.latest_status == "PROCESSING"
    assert clock.sleeps == [4, 4, 2]
    assert clock.now == 10


def test_transient_errors_are_recorded_and_retried(clock):
    poller = StatusPoller(interval_seconds=1, timeout_seconds=30, clock=clock, sleep=clock.sleep)

    outcome = asyncio.run(poller.poll(scripted(
        RuntimeError("deposit address not found"),
        RuntimeError("HTTP 404"),
        "SUCCESS",
    )))

    assert outcome.timed_out is False
    assert outcome.attempts == 3
    assert outcome.last_error == "HTTP 404"
    assert [attempt.error for attempt in outcome.history[:2]] == ["deposit address not found", "HTTP 404"]


def test_fatal_error_is_raised(clock):
    poller = StatusPoller(clock=clock, sleep=clock.sleep)

    with pytest.raises(RuntimeError, match="unauthorized"):
        asyncio.run(poller.poll(scripted("PENDING_DEPOSIT", RuntimeError("unauthorized"))))


def test_per_call_overrides(clock):
    poller = StatusPoller(interval_seconds=5, timeout_seconds=60, clock=clock, sleep=clock.sleep)

    outcome = asyncio.run(poller.poll(scripted(*["PENDING_DEPOSIT"] * 5), interval_seconds=1, timeout_seconds=2))

    assert outcome.timed_out is True
    assert outcome.attempts == 3


def test_transient_error_classification():
    assert is_transient_error(RuntimeError("Deposit not yet indexed"))
    assert is_transient_error(RuntimeError("status 404"))
    assert not is_transient_error(RuntimeError("internal server error"))
