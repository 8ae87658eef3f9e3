"""
providers/base.py

Contract shared by all fare search providers, plus the failure taxonomy the
best-offer selector relies on:

  ProviderTransientError - timeouts, connection errors, 429, 5xx.
                           Skip the combination, keep going.
  ProviderRequestError   - the provider rejected the request itself
                           (bad route, bad date, other 4xx).
"""

from typing import List, Optional, Protocol

from schemas.search import FareOffer, FareSearchRequest


class FareSearchError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider

    @property
    def signature(self) -> str:
        """Stable identity used to tell whether repeated failures are the same failure."""
        return f"{type(self).__name__}:{self.provider}:{self.status_code}"


class ProviderTransientError(FareSearchError):
    pass


class ProviderRequestError(FareSearchError):
    pass


class ProviderTotalFailure(FareSearchError):
    """Every combination of one watch failed with the same hard provider error."""

    def __init__(self, cause: FareSearchError, attempts: int):
        super().__init__(str(cause), status_code=cause.status_code, provider=cause.provider)
        self.cause = cause
        self.attempts = attempts


def classify_http_status(status_code: int) -> type:
    if status_code == 429 or status_code >= 500:
        return ProviderTransientError
    return ProviderRequestError


class FareSearchProvider(Protocol):
    name: str

    def search(self, request: FareSearchRequest) -> List[FareOffer]:
        ...
