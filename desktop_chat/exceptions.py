"""
Error taxonomy for streaming LLM requests.

- TransportError: the connection failed or broke mid-stream
- ApiError: the server answered with a non-2xx status
- ParseError: a single frame could not be decoded (recovered by the parser)
- RequestCancelledError: the user aborted the request (reported as completion)
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with response context."""

    def __init__(
        self,
        message: str,
        *,
        model: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class TransportError(LLMError):
    """Network or connection failure."""
    pass


class ApiError(LLMError):
    """Non-2xx response carrying the server-provided message."""
    pass


class ParseError(LLMError):
    """A malformed frame in the event stream."""

    def __init__(self, message: str, line: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.line = line


class RequestCancelledError(LLMError):
    """The in-flight request was aborted by the caller."""

    def __init__(self, message: str = "Request was aborted", **kwargs):
        super().__init__(message, **kwargs)
