from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    RELAY_FAILED = "RELAY_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    CLASSIFIER_FAILED = "CLASSIFIER_FAILED"
    CLASSIFIER_UNAVAILABLE = "CLASSIFIER_UNAVAILABLE"
    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    ORIGIN_REJECTED = "ORIGIN_REJECTED"
    UNSUPPORTED_PROTOCOL = "UNSUPPORTED_PROTOCOL"


class FailureKind(StrEnum):
    """Outcome of a single failed relay attempt.

    The retry loop switches on this value; it never inspects message text.
    """

    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    RELAY_REJECTED = "relay_rejected"
    INVALID_BODY = "invalid_body"
    API_ERROR = "api_error"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"

    @property
    def terminal(self) -> bool:
        return self in (FailureKind.FORBIDDEN, FailureKind.NOT_FOUND)


class RelayReaderError(Exception):
    """Raised for all expected failure conditions.

    Caught by server.py and serialised into the MCP error response.
    Business logic lets it propagate unchanged in kind so callers can tell
    "not found / private" apart from "try again".
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


class TransientRelayError(RelayReaderError):
    """5xx, malformed body, relay rejection or attempt timeout."""

    def __init__(self, message: str, *, kind: FailureKind, status_code: int | None = None) -> None:
        super().__init__(
            code=ErrorCode.RELAY_FAILED,
            message=message,
            suggestion="The relay or Reddit is temporarily unavailable. Try again shortly.",
            recoverable=True,
        )
        self.kind = kind
        self.status_code = status_code


class RateLimitedError(RelayReaderError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code=ErrorCode.RATE_LIMITED,
            message=message,
            suggestion="Reddit is rate limiting requests. Wait a moment before retrying.",
            recoverable=True,
        )
        self.kind = FailureKind.RATE_LIMITED
        self.status_code = 429


class TerminalResourceError(RelayReaderError):
    """403/404 from upstream: the resource is private or removed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(
            code=ErrorCode.RESOURCE_UNAVAILABLE,
            message=message,
            suggestion="The subreddit or post is private, banned or deleted.",
            recoverable=False,
        )
        self.status_code = status_code


class RetryBudgetExhaustedError(RelayReaderError):
    def __init__(self, message: str, *, attempts: int, last_error: RelayReaderError) -> None:
        super().__init__(
            code=ErrorCode.RETRY_EXHAUSTED,
            message=message,
            suggestion="All relays failed. Check connectivity or try again later.",
            recoverable=True,
        )
        self.attempts = attempts
        self.last_error = last_error


class RequestCancelledError(RelayReaderError):
    def __init__(self, url: str) -> None:
        super().__init__(
            code=ErrorCode.REQUEST_CANCELLED,
            message=f"Request cancelled: {url}",
            suggestion="The request was abandoned by the caller.",
            recoverable=True,
        )


class ClassifierError(RelayReaderError):
    def __init__(self, code: ErrorCode, message: str, *, recoverable: bool = True) -> None:
        super().__init__(
            code=code,
            message=message,
            suggestion="Configure a classifier endpoint and key, or score posts later.",
            recoverable=recoverable,
        )
