"""source-ballchasing error hierarchy.

All project exceptions inherit from SourceError, enabling:
- ``except SourceError`` at the process boundary (CLI)
- Fine-grained catches deeper in the stack (``except FetchError``)

Hierarchy:
    SourceError
    ├── ConfigError             # malformed endpoint/resource config or settings
    ├── FetchError              # non-success response, undecodable body, transport failure
    │   └── RateLimitedError    # HTTP 429, retried inside the fetcher only
    └── ProtocolError           # malformed or out-of-sequence protocol input
"""

from __future__ import annotations


class SourceError(Exception):
    """Base class for all source-ballchasing errors."""


class ConfigError(SourceError):
    """Configuration could not be parsed or validated."""


class FetchError(SourceError):
    def __init__(self, message: str, *, url: str | None = None, status: int | None = None, body: str | None = None):
        super().__init__(message)
        self.url = url
        self.status = status
        self.body = body

    def __str__(self) -> str:
        text = super().__str__()
        if self.url:
            text = f"{text} (url={self.url})"
        if self.status is not None:
            text = f"{text} status={self.status} body={self.body!r}"
        return text


class RateLimitedError(FetchError):
    """The remote rejected a request with HTTP 429."""


class ProtocolError(SourceError):
    """The host sent something the connector did not expect."""


__all__ = ["SourceError", "ConfigError", "FetchError", "RateLimitedError", "ProtocolError"]
