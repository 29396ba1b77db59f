"""errors.py — Error taxonomy for the assistant stream consumer.

Only TransportError and UnsupportedStreamError become user-visible failures.
CancellationError is expected (supersede, clear, dispose) and stays silent.
EMPTY_STREAM and MALFORMED_FINAL_PAYLOAD are outcome codes, never raised.
"""

from typing import Optional

# Outcome codes that are handled locally, never thrown
EMPTY_STREAM = "empty_stream"
MALFORMED_FINAL_PAYLOAD = "malformed_final_payload"


class AssistantStreamError(Exception):
    """Structured error with code, status_code, retryable flag."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.retryable = retryable

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": str(self),
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class CancellationError(AssistantStreamError):
    """Session was superseded, cleared or disposed."""

    def __init__(self, message: str = "Stream cancelled"):
        super().__init__(code="cancelled", message=message)


class TransportError(AssistantStreamError):
    """Non-success response, connection failure or read failure."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(
            code="transport_error",
            message=message,
            status_code=status_code,
            retryable=retryable,
        )


class UnsupportedStreamError(AssistantStreamError):
    """Response carried no readable body."""

    def __init__(self, message: str = "Streaming not supported", status_code: Optional[int] = None):
        super().__init__(code="unsupported_stream", message=message, status_code=status_code)
