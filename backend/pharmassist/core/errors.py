"""
Error taxonomy for the AI capability layer.

Every tier raises one of these (or lets an httpx/pydantic error escape) and the
fallback orchestrator turns it into a tier failure. Only ``RateLimited`` is
ever surfaced to the caller of a capability.
"""
from typing import Any, Optional


class PharmassistError(Exception):
    """Base class for all errors raised by this package."""


class RateLimited(PharmassistError):
    """Raised when a capability endpoint is called again inside its throttle window."""

    def __init__(self, endpoint_key: str, retry_after: float):
        super().__init__(
            f"Rate limit exceeded for {endpoint_key}; retry in {retry_after:.1f}s"
        )
        self.endpoint_key = endpoint_key
        self.retry_after = retry_after


class NetworkUnavailable(PharmassistError):
    """Raised when an upstream cannot be reached (DNS, connect, timeout, open circuit)."""

    def __init__(self, upstream: str, message: str = "upstream unreachable"):
        super().__init__(f"{upstream}: {message}")
        self.upstream = upstream


class UpstreamError(PharmassistError):
    """
    Raised when an upstream answered with an error.

    Covers both non-2xx statuses and 2xx bodies that carry an error envelope.
    """

    def __init__(self, status: Optional[int], body: Any, upstream: str = "upstream"):
        super().__init__(f"{upstream} returned an error (status={status}): {body!r:.200}")
        self.status = status
        self.body = body
        self.upstream = upstream


class ValidationError(PharmassistError):
    """Raised when an upstream payload does not have the expected shape."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class ToolExecutionFailure(PharmassistError):
    """Raised when a routed tool fails against local data operations."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"tool {tool} failed: {message}")
        self.tool = tool


class UnresolvedDrugName(PharmassistError):
    """Raised when a drug name cannot be resolved by any nomenclature source."""

    def __init__(self, name: str):
        super().__init__(f"could not resolve drug name {name!r}")
        self.name = name
