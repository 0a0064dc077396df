"""
Error Taxonomy

Typed errors shared by every layer of the assistant. Provider code wraps SDK
exceptions into these classes; the outer surfaces (HTTP API, Discord bot) turn
them into user-facing messages via ``user_message`` so upstream internals are
logged but never shown to end users.

Hierarchy:
    AssistantError
    ├── ConfigurationError   - missing settings, embedding dimension mismatch
    ├── EmbeddingError       - embedding service failed or returned bad data
    ├── SearchError          - vector database query failed
    ├── GenerationError      - chat completion failed or returned a bad shape
    └── ValidationError      - malformed request payload / message
"""

from typing import Any, List, Optional, Sequence


class AssistantError(Exception):
    """Base class for all assistant errors."""

    user_message = "Something went wrong while answering your question. Please try again."


class ConfigurationError(AssistantError):
    """
    Required setting absent or inconsistent at startup.

    Always carries the complete list of problems, never only the first one.
    """

    user_message = "The assistant is not configured correctly."

    def __init__(self, problems: Sequence[str]):
        self.problems: List[str] = list(problems)
        lines = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"Configuration errors:\n{lines}")


class EmbeddingError(AssistantError):
    """Embedding service failed, timed out or returned malformed data."""

    user_message = "I couldn't find relevant information right now. Please try again."


class SearchError(AssistantError):
    """Vector database query failed."""

    user_message = "I couldn't find relevant information right now. Please try again."


class ValidationError(AssistantError):
    """Malformed request payload."""

    user_message = "The request was not valid."


# Error kinds for GenerationError
RATE_LIMIT = "rate_limit"
AUTHENTICATION = "authentication"
QUOTA = "quota"
GENERIC = "generic"

_GENERATION_MESSAGES = {
    RATE_LIMIT: "Rate limit exceeded - please try again shortly.",
    AUTHENTICATION: "Authentication with the language model provider failed.",
    QUOTA: "The language model quota has been exhausted.",
    GENERIC: "The language model request failed. Please try again.",
}


class GenerationError(AssistantError):
    """
    Chat completion failed or returned an unusable shape.

    Attributes:
        kind: One of "rate_limit", "authentication", "quota", "generic"
    """

    def __init__(self, message: str, kind: str = GENERIC):
        super().__init__(message)
        self.kind = kind if kind in _GENERATION_MESSAGES else GENERIC

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return _GENERATION_MESSAGES[self.kind]

    @classmethod
    def from_exception(cls, exc: BaseException, action: str = "Chat completion") -> "GenerationError":
        """Wrap a provider SDK exception, classifying it by status/code."""
        kind = classify_upstream_error(exc)
        return cls(f"{action} failed: {exc}", kind=kind)


def classify_upstream_error(exc: BaseException) -> str:
    """
    Classify an SDK exception into a GenerationError kind.

    Works on attributes rather than SDK classes so both the OpenAI and Mistral
    clients are covered: ``status_code`` (HTTP status) and ``code`` (API error
    code such as "insufficient_quota").
    """
    code: Optional[Any] = getattr(exc, "code", None)
    status: Optional[Any] = getattr(exc, "status_code", None)

    if code == "insufficient_quota":
        return QUOTA
    if code in ("rate_limit_exceeded", "429") or status == 429:
        return RATE_LIMIT
    if code in ("authentication_error", "invalid_api_key", "401") or status == 401:
        return AUTHENTICATION
    return GENERIC
