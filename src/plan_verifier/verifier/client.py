"""Streaming completion client for plan review."""

from dataclasses import dataclass
from typing import Any, Callable, Optional

import anthropic
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..config import DEFAULT_MAX_TOKENS
from ..core.errors import VerificationError, VerificationFailure

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3
RETRYABLE_ERRORS = (anthropic.APIConnectionError, anthropic.RateLimitError)
RETRY_WAIT = wait_exponential(multiplier=0.5, max=10) + wait_random(0, 0.5)


@dataclass(frozen=True)
class StreamResult:
    input_tokens: int
    output_tokens: int


class _PreStreamError(Exception):
    """Retryable failure raised before any text reached the caller."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(str(cause))
        self.cause = cause


def classify_error(exc: Exception) -> VerificationError:
    """Map a client exception to a categorized VerificationError."""
    if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        failure = VerificationFailure.AUTHENTICATION
    elif isinstance(exc, anthropic.RateLimitError):
        failure = VerificationFailure.RATE_LIMIT
    elif isinstance(exc, anthropic.APIConnectionError):
        failure = VerificationFailure.NETWORK
    else:
        failure = VerificationFailure.UNKNOWN
    return VerificationError(failure, str(exc))


@retry(
    stop=stop_after_attempt(MAX_ATTEMPTS),
    wait=RETRY_WAIT,
    retry=retry_if_exception_type(_PreStreamError),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        "verification_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    ),
)
async def _stream_once(
    client: Any,
    model: str,
    system_prompt: str,
    user_message: str,
    on_text: Callable[[str], None],
    max_tokens: int,
) -> StreamResult:
    emitted = False
    try:
        async with client.messages.stream(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        ) as stream:
            async for text in stream.text_stream:
                emitted = True
                on_text(text)
            message = await stream.get_final_message()
    except RETRYABLE_ERRORS as exc:
        if emitted:
            raise
        raise _PreStreamError(exc) from exc

    return StreamResult(
        input_tokens=message.usage.input_tokens,
        output_tokens=message.usage.output_tokens,
    )


async def stream_verification(
    api_key: str,
    model: str,
    system_prompt: str,
    user_message: str,
    on_text: Callable[[str], None],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    client: Optional[Any] = None,
) -> StreamResult:
    """Stream a review completion, delivering text fragments as they arrive.

    Connection and rate-limit failures are retried only while no fragment
    has been delivered, so the caller never sees duplicated text.

    Args:
        api_key: Anthropic API key
        model: Model identifier
        system_prompt: Reviewer system prompt
        user_message: Rendered context and plan
        on_text: Called once per text fragment, in arrival order
        max_tokens: Completion token cap
        client: Pre-built ``AsyncAnthropic`` client (tests inject fakes)

    Returns:
        StreamResult with token usage

    Raises:
        VerificationError: Categorized as authentication, rate_limit,
            network or unknown
    """
    client = client or anthropic.AsyncAnthropic(api_key=api_key)
    try:
        result = await _stream_once(client, model, system_prompt, user_message, on_text, max_tokens)
    except _PreStreamError as exc:
        raise classify_error(exc.cause) from exc.cause
    except anthropic.APIError as exc:
        raise classify_error(exc) from exc

    logger.info(
        "verification_completed",
        model=model,
        input_tokens=result.input_tokens,
        output_tokens=result.output_tokens,
    )
    return result
