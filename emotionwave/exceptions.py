"""
Mood Source Exceptions - Custom error hierarchy.

Sources raise these from fetch(). The aggregation service catches them
per source, logs them and carries on with whatever the other sources
returned. They never cross the service's public boundary.
"""

from datetime import datetime
from typing import Any, Optional


class MoodSourceError(Exception):
    """Base exception for all mood source errors."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.source_name = source_name
        self.details = details or {}
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_name": self.source_name,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class FetchError(MoodSourceError):
    """Failed to fetch data from the upstream API."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.status_code = status_code
        self.url = url

    def is_retryable(self) -> bool:
        """Connection failures, rate limits and server errors are transient."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "url": self.url,
        })
        return data


class RequestTimeoutError(FetchError):
    """A single upstream request exceeded its timeout and was cancelled."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        timeout_seconds: Optional[float] = None,
        url: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, url=url, details=details)
        self.timeout_seconds = timeout_seconds

    def is_retryable(self) -> bool:
        return True


class RateLimitError(FetchError):
    """Rate limit exceeded for the upstream API."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        retry_after_seconds: Optional[int] = None,
        url: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, status_code=429, url=url, details=details)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class ParseError(MoodSourceError):
    """Response body could not be parsed or had an unexpected shape."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        raw_data: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.raw_data = raw_data[:500] if raw_data else None  # Truncate for safety

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "raw_data_preview": self.raw_data[:100] if self.raw_data else None,
        })
        return data


class UpstreamError(ParseError):
    """Upstream answered successfully but the body is an error message."""
    pass


class AuthenticationError(MoodSourceError):
    """Credentials were rejected by the upstream API."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.status_code = status_code


class ClassifierError(MoodSourceError):
    """External text classifier could not produce a score."""
    pass
