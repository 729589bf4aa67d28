"""
Unit tests for retry with exponential backoff.

Tests for:
- Delay calculation
- Retry loop success, exhaustion and non-retryable errors
"""

import asyncio

import pytest

from ragcore.core.exceptions import BackendRequestError, BackendUnavailableError
from ragcore.utils.retry import RetryConfig, calculate_delay, retry_async


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_defaults(self):
        """Test default configuration values."""
        config = RetryConfig()

        assert config.max_attempts == 3
        assert config.initial_delay_ms == 250.0
        assert config.backoff_multiplier == 2.0
        assert config.jitter is True

    def test_from_dict(self):
        """Test creating config from a dictionary."""
        config = RetryConfig.from_dict({"max_attempts": "5", "jitter": False})

        assert config.max_attempts == 5
        assert config.jitter is False
        assert config.max_delay_ms == 4000.0


class TestCalculateDelay:
    """Tests for calculate_delay."""

    def test_exponential_growth(self):
        """Test delay doubles per attempt without jitter."""
        config = RetryConfig(initial_delay_ms=100, backoff_multiplier=2, jitter=False)

        assert calculate_delay(0, config) == pytest.approx(0.1)
        assert calculate_delay(1, config) == pytest.approx(0.2)
        assert calculate_delay(2, config) == pytest.approx(0.4)

    def test_capped_at_max_delay(self):
        """Test delay never exceeds max_delay_ms."""
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=1500, jitter=False)

        assert calculate_delay(5, config) == pytest.approx(1.5)

    def test_jitter_within_bounds(self):
        """Test jitter stays within +/-25%."""
        config = RetryConfig(initial_delay_ms=1000, jitter=True)

        for _ in range(20):
            assert 0.75 <= calculate_delay(0, config) <= 1.25


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.fixture
    def sleeps(self):
        return []

    @pytest.fixture
    def fake_sleep(self, sleeps):
        async def _sleep(delay):
            sleeps.append(delay)
        return _sleep

    def test_success_first_attempt(self, fake_sleep, sleeps):
        """Test an operation that succeeds immediately."""
        async def operation():
            return "ok"

        result = asyncio.run(retry_async(operation, RetryConfig(), sleep=fake_sleep))

        assert result.success is True
        assert result.result == "ok"
        assert result.attempts == 1
        assert sleeps == []

    def test_success_after_transient_failures(self, fake_sleep, sleeps):
        """Test retrying until the operation succeeds."""
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise BackendUnavailableError("down")
            return 42

        config = RetryConfig(max_attempts=3, initial_delay_ms=10, jitter=False)
        result = asyncio.run(retry_async(
            operation, config, retry_on=(BackendUnavailableError,), sleep=fake_sleep
        ))

        assert result.success is True
        assert result.result == 42
        assert result.attempts == 3
        assert len(result.error_history) == 2
        assert sleeps == [pytest.approx(0.01), pytest.approx(0.02)]

    def test_exhausted_returns_last_error(self, fake_sleep, sleeps):
        """Test the last exception is reported after all attempts fail."""
        async def operation():
            raise BackendUnavailableError("still down")

        config = RetryConfig(max_attempts=2, jitter=False)
        result = asyncio.run(retry_async(
            operation, config, retry_on=(BackendUnavailableError,), sleep=fake_sleep
        ))

        assert result.success is False
        assert result.attempts == 2
        assert isinstance(result.error, BackendUnavailableError)
        assert len(sleeps) == 1

    def test_non_retryable_stops_immediately(self, fake_sleep, sleeps):
        """Test should_retry rejecting an error ends the loop."""
        calls = []

        async def operation():
            calls.append(1)
            raise BackendUnavailableError("bad key", retryable=False)

        result = asyncio.run(retry_async(
            operation,
            RetryConfig(max_attempts=5),
            retry_on=(BackendUnavailableError,),
            should_retry=lambda e: e.retryable,
            sleep=fake_sleep,
        ))

        assert result.success is False
        assert result.attempts == 1
        assert len(calls) == 1
        assert sleeps == []

    def test_other_exceptions_propagate(self, fake_sleep):
        """Test errors outside retry_on are raised to the caller."""
        async def operation():
            raise BackendRequestError("bad request")

        with pytest.raises(BackendRequestError):
            asyncio.run(retry_async(
                operation,
                RetryConfig(),
                retry_on=(BackendUnavailableError,),
                sleep=fake_sleep,
            ))
