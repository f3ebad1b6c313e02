"""Tests for the provider retry policy."""

import httpx
import pytest

from cadenza.domain.exceptions import MetadataError, ProviderError
from cadenza.infrastructure.retry_policy import RetryPolicy, is_transient_http_error


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://provider.test/x")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def policy(sleep: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=1.0, jitter=lambda _d: 0.0, sleep=sleep)


class TestTransientClassification:
    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_status(self, status: int) -> None:
        assert is_transient_http_error(_status_error(status))

    @pytest.mark.parametrize("status", [400, 404])
    def test_client_errors_are_final(self, status: int) -> None:
        assert not is_transient_http_error(_status_error(status))

    def test_transport_error_is_transient(self) -> None:
        assert is_transient_http_error(httpx.ConnectError("refused"))

    def test_plain_exception_is_not(self) -> None:
        assert not is_transient_http_error(ValueError("bad json"))


class TestRetryPolicyRun:
    async def test_recovers_after_transient_failures(
        self, policy: RetryPolicy, sleep: RecordingSleep
    ) -> None:
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise _status_error(503)
            return "ok"

        assert await policy.run(flaky, "musicbrainz", "artist search") == "ok"
        assert calls == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_exhaustion_raises_provider_error(self, policy: RetryPolicy) -> None:
        async def always_down() -> None:
            raise httpx.ReadTimeout("slow")

        with pytest.raises(ProviderError) as exc_info:
            await policy.run(always_down, "wikidata", "entity fetch")

        assert exc_info.value.provider == "wikidata"
        assert "after 3 attempts" in str(exc_info.value)
        assert isinstance(exc_info.value, MetadataError)

    async def test_non_transient_fails_without_retry(
        self, policy: RetryPolicy, sleep: RecordingSleep
    ) -> None:
        async def bad_request() -> None:
            raise _status_error(400)

        with pytest.raises(ProviderError):
            await policy.run(bad_request, "lastfm", "artist page")

        assert sleep.delays == []

    def test_delay_grows_exponentially(self, policy: RetryPolicy) -> None:
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
