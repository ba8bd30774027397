"""
Retry helper tests

Backoff schedule, non-retryable short-circuit and quota detection.
"""
import pytest

from sqlpath.services.retry import with_retry, is_quota_error


class QuotaError(Exception):
    status_code = 429


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def failing_then(value, failures, error_factory=lambda: QuotaError("quota exceeded")):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error_factory()
        return value

    return operation, calls


class TestWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        sleep = RecordingSleep()
        operation, calls = failing_then("ok", 0)

        result = await with_retry(operation, sleep=sleep)

        assert result.ok is True
        assert result.value == "ok"
        assert result.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_exponential_backoff_schedule(self):
        sleep = RecordingSleep()
        operation, calls = failing_then("ok", 3)

        result = await with_retry(operation, max_attempts=4, base_delay=2.0, sleep=sleep)

        assert result.ok is True
        assert result.attempts == 4
        assert sleep.delays == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        sleep = RecordingSleep()
        operation, calls = failing_then("never", 10)

        result = await with_retry(operation, max_attempts=3, base_delay=1.0, sleep=sleep)

        assert result.ok is False
        assert isinstance(result.error, QuotaError)
        assert result.attempts == 3
        assert calls["count"] == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self):
        sleep = RecordingSleep()
        operation, calls = failing_then("never", 10, lambda: KeyError("bad payload"))

        result = await with_retry(operation, sleep=sleep)

        assert result.ok is False
        assert result.attempts == 1
        assert sleep.delays == []
        with pytest.raises(KeyError):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_custom_predicate(self):
        sleep = RecordingSleep()
        operation, calls = failing_then("ok", 1, lambda: TimeoutError("slow"))

        result = await with_retry(
            operation, base_delay=0.5, is_retryable=lambda e: isinstance(e, TimeoutError), sleep=sleep
        )

        assert result.unwrap() == "ok"
        assert sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        operation, _ = failing_then("ok", 0)
        with pytest.raises(ValueError):
            await with_retry(operation, max_attempts=0)


class TestIsQuotaError:

    def test_status_attribute(self):
        assert is_quota_error(QuotaError()) is True

    def test_message_markers(self):
        assert is_quota_error(RuntimeError("429 Too Many Requests")) is True
        assert is_quota_error(RuntimeError("RESOURCE_EXHAUSTED: try later")) is True
        assert is_quota_error(RuntimeError("You exceeded your current quota")) is True

    def test_other_errors(self):
        assert is_quota_error(RuntimeError("invalid api key")) is False
