"""Error types shared by the aggregation engine and the API layer."""
from typing import Dict, Optional


class AgencyApiError(Exception):
    """Transport failure or non-2xx response from the upstream agency API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_authorization_error(self) -> bool:
        return self.status_code in (401, 403)


class FetchFailedError(Exception):
    """A fetch batch was rejected because at least one agency failed."""

    def __init__(self, failures: Dict[str, BaseException]):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Fetch failed for {len(failures)} agency(s): {names}")


class MutationValidationError(ValueError):
    """Blocks a mutation before any network call is made."""


class UnknownRecordError(KeyError):
    """A record key does not resolve to a record in the current merged set."""
