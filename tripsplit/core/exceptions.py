"""Domain errors raised by repositories and services.

Endpoints translate these into HTTP responses; nothing here knows about HTTP.
"""


class TripsplitError(Exception):
    """Base class for settlement domain errors."""
    pass


class DataUnavailableError(TripsplitError):
    """The document store could not be read or written."""
    pass


class RecordNotFoundError(TripsplitError):
    """A referenced record does not exist."""
    pass


class PermissionDeniedError(TripsplitError):
    """The acting user may not perform this operation."""
    pass


class SettlementValidationError(TripsplitError):
    """Input to a settlement operation is invalid."""
    pass


class SettlementConflictError(TripsplitError):
    """The record was already approved or rejected by someone else."""
    pass


class SettlementInProgressError(TripsplitError):
    """Another request is already deciding the same record."""
    pass
