from __future__ import annotations


class HarvestError(Exception):
    """Base exception for harvest failures."""


class MappingError(HarvestError):
    """A job record has the wrong shape or lacks what is needed to build its detail URL."""


class PersistenceError(HarvestError):
    """
    One or both writes of a job task failed.
    Raised only after both writes were attempted; `errors` keeps every store exception.
    """

    def __init__(self, message: str, errors: list[BaseException]):
        super().__init__(message)
        self.errors = errors
