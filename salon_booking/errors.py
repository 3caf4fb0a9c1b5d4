"""Exception hierarchy for the booking engine."""
from typing import Any, List, Optional


class BookingError(Exception):
    """Base class for all booking engine errors."""
    pass


class BookingValidationError(BookingError):
    """Raised when a selection is rejected locally, before any network call."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class WizardStateError(BookingError):
    """Raised when an operation is not allowed in the current wizard step."""
    pass


class BackendError(BookingError):
    """Raised when the booking backend rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendValidationError(BackendError):
    """Raised when the backend rejects a request payload (HTTP 400/422)."""
    pass


class BookingConflictError(BackendError):
    """Raised when the chosen slot was taken before submission completed."""
    pass


class PartialBookingError(BackendError):
    """
    Raised when a chained submission fails after creating some appointments.

    Attributes:
        created: Appointments created before the failure, in service order
        failed_index: Index of the failed request (equals len(created))
        cause: The underlying backend error
    """

    def __init__(
        self,
        message: str,
        created: List[Any],
        failed_index: int,
        cause: BackendError
    ):
        super().__init__(message, status_code=cause.status_code)
        self.created = created
        self.failed_index = failed_index
        self.cause = cause

    @property
    def created_ids(self) -> List[str]:
        return [
            str(appt.get("id") if isinstance(appt, dict) else getattr(appt, "id", appt))
            for appt in self.created
        ]
