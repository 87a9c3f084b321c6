import pytest

from plainstep.errors import ExternalServiceError
from plainstep.llm.retry import call_ai, call_with_retry, is_retryable_status


@pytest.mark.parametrize("status, retryable", [
    (None, True), (408, True), (429, True), (500, True), (503, True), (400, False), (404, False),
])
def test_is_retryable_status(status, retryable):
    assert is_retryable_status(status) is retryable


def test_retries_with_linear_backoff():
    calls = []
    sleeps = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ExternalServiceError("rate limited", retryable=True, status=429)
        return "ok"

    assert call_with_retry(flaky, "test call", base_delay=0.5, sleep=sleeps.append) == "ok"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_gives_up_after_max_attempts():
    sleeps = []

    def down():
        raise ExternalServiceError("unavailable", retryable=True, status=503)

    assert call_with_retry(down, "test call", max_attempts=3, sleep=sleeps.append) is None
    assert sleeps == [1.0, 2.0]


def test_non_retryable_error_is_not_retried():
    calls = []

    def bad_request():
        calls.append(1)
        raise ExternalServiceError("bad request", retryable=False, status=400)

    assert call_with_retry(bad_request, "test call", sleep=lambda s: None) is None
    assert len(calls) == 1


def test_other_exceptions_propagate():
    def broken():
        raise ValueError("bug")

    with pytest.raises(ValueError):
        call_with_retry(broken, "test call", sleep=lambda s: None)


def test_call_ai_turns_unexpected_errors_into_no_answer(caplog):
    def broken_client():
        raise KeyError("choices")

    with caplog.at_level("WARNING", logger="plainstep.llm.retry"):
        assert call_ai(broken_client, "AI selector suggestion", sleep=lambda s: None) is None
    assert "failed unexpectedly (KeyError)" in caplog.text


def test_call_ai_still_retries_service_errors():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise ExternalServiceError("unavailable", retryable=True, status=503)
        return "ok"

    assert call_ai(flaky, "AI step interpretation", sleep=lambda s: None) == "ok"
    assert len(calls) == 2
