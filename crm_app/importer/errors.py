"""Exception hierarchy for the bulk import worker."""

from __future__ import annotations


class ImporterError(RuntimeError):
    """Base class for importer failures."""


class UnsupportedContentTypeError(ImporterError, ValueError):
    """Raised when an invocation names a record kind the importer cannot build."""

    def __init__(self, content_type: object) -> None:
        super().__init__(f'Unsupported content type "{content_type}"')
        self.content_type = content_type


class InvalidPayloadError(ImporterError, ValueError):
    """Raised when a task payload cannot be parsed into an invocation."""


class RowMappingError(ImporterError):
    """
    Raised when a column property cannot be applied to a row.

    Only raised when strict row mapping is enabled; by default lookup misses
    leave the field empty instead.
    """

    def __init__(self, message: str, *, column_index: int | None = None) -> None:
        super().__init__(message)
        self.column_index = column_index


class BatchValidationError(ImporterError):
    """Raised when a batch must be rejected before anything is inserted."""


class LinkingError(ImporterError):
    """Raised when relationships cannot be written for already persisted records."""


class JobNotFoundError(ImporterError, LookupError):
    """Raised when the shared import job row no longer exists."""

    def __init__(self, job_id: int) -> None:
        super().__init__(f"Could not find import job {job_id}")
        self.job_id = job_id
