"""Plan review via a streaming completion."""

from .client import StreamResult, classify_error, stream_verification
from .prompt import SYSTEM_PROMPT, build_user_message

__all__ = [
    "StreamResult",
    "classify_error",
    "stream_verification",
    "SYSTEM_PROMPT",
    "build_user_message",
]
