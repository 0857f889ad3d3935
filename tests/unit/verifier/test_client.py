"""Tests for the streaming review client."""

from types import SimpleNamespace

import anthropic
import httpx
import pytest
from tenacity import wait_none

from plan_verifier.core.errors import VerificationError, VerificationFailure
from plan_verifier.verifier.client import (
    RETRY_WAIT,
    _stream_once,
    classify_error,
    stream_verification,
)

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def connection_error():
    return anthropic.APIConnectionError(request=REQUEST)


def status_error(cls, status):
    return cls("request failed", response=httpx.Response(status, request=REQUEST), body=None)


class FakeStream:
    def __init__(self, chunks, error=None):
        self._chunks = chunks
        self._error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def text_stream(self):
        return self._iter()

    async def _iter(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def get_final_message(self):
        return SimpleNamespace(usage=SimpleNamespace(input_tokens=120, output_tokens=45))


class FakeClient:
    """Returns the scripted outcome for each call; exceptions are raised on open."""

    def __init__(self, outcomes):
        self.messages = self
        self._outcomes = list(outcomes)
        self.calls = []

    def stream(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(_stream_once.retry, "wait", wait_none())


async def run(client):
    fragments = []
    result = await stream_verification(
        "sk-test", "test-model", "system", "user", fragments.append, max_tokens=256, client=client
    )
    return fragments, result


@pytest.mark.asyncio
async def test_streams_fragments_in_order():
    client = FakeClient([FakeStream(["Looks ", "good."])])

    fragments, result = await run(client)

    assert fragments == ["Looks ", "good."]
    assert (result.input_tokens, result.output_tokens) == (120, 45)
    call = client.calls[0]
    assert call["model"] == "test-model"
    assert call["max_tokens"] == 256
    assert call["system"] == "system"
    assert call["messages"] == [{"role": "user", "content": "user"}]


@pytest.mark.asyncio
async def test_retries_connection_error_before_first_fragment():
    client = FakeClient([connection_error(), FakeStream(["ok"])])

    fragments, _ = await run(client)

    assert fragments == ["ok"]
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_no_retry_after_text_was_delivered():
    client = FakeClient([FakeStream(["partial"], error=connection_error()), FakeStream(["dup"])])

    with pytest.raises(VerificationError) as exc_info:
        await run(client)

    assert exc_info.value.failure == VerificationFailure.NETWORK
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_rate_limit_exhausts_attempts():
    client = FakeClient([status_error(anthropic.RateLimitError, 429) for _ in range(3)])

    with pytest.raises(VerificationError) as exc_info:
        await run(client)

    assert exc_info.value.failure == VerificationFailure.RATE_LIMIT
    assert len(client.calls) == 3


@pytest.mark.asyncio
async def test_authentication_error_is_not_retried():
    client = FakeClient([status_error(anthropic.AuthenticationError, 401)])

    with pytest.raises(VerificationError) as exc_info:
        await run(client)

    assert exc_info.value.failure == VerificationFailure.AUTHENTICATION
    assert "ANTHROPIC_API_KEY" in exc_info.value.message
    assert len(client.calls) == 1


@pytest.mark.parametrize(
    "exc, failure",
    [
        (status_error(anthropic.AuthenticationError, 401), VerificationFailure.AUTHENTICATION),
        (status_error(anthropic.PermissionDeniedError, 403), VerificationFailure.AUTHENTICATION),
        (status_error(anthropic.RateLimitError, 429), VerificationFailure.RATE_LIMIT),
        (connection_error(), VerificationFailure.NETWORK),
        (status_error(anthropic.InternalServerError, 500), VerificationFailure.UNKNOWN),
        (RuntimeError("odd"), VerificationFailure.UNKNOWN),
    ],
)
def test_classify_error(exc, failure):
    error = classify_error(exc)

    assert error.failure == failure
    assert error.details == {"failure": failure.value}


@pytest.mark.parametrize("attempt, low, high", [(1, 0.5, 1.0), (2, 1.0, 1.5), (10, 10.0, 10.5)])
def test_retry_wait_is_capped_exponential_with_jitter(attempt, low, high):
    wait = RETRY_WAIT(SimpleNamespace(attempt_number=attempt))

    assert low <= wait <= high
