"""Booking submission strategies.

One interface, two strategies selected by configuration:

- COMBINED: a single request with the primary service and an
  "additional_services" list; the backend computes the combined end time
- CHAINED: one request per timed service in booking order, each starting
  when the previous one ends (start[i+1] = start[i] + duration[i]); add-ons
  ride along with the timed service they follow

A chained submission that fails after creating some appointments raises
PartialBookingError with the created prefix, so callers never lose track
of what already exists. Passing that prefix back resumes the chain.
"""
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from salon_booking import config
from salon_booking.backend import BookingBackend, format_wire_date, format_wire_time
from salon_booking.errors import BackendError, BookingValidationError, PartialBookingError
from salon_booking.logging_config import get_logger
from salon_booking.models import BookingDraft, Service

logger = get_logger(__name__)


class SubmissionStrategy(str, Enum):
    COMBINED = "combined"
    CHAINED = "chained"


class SubmissionResult(NamedTuple):
    """Appointments created for one booking, in service order."""
    strategy: SubmissionStrategy
    appointments: List[Dict[str, Any]]


def chain_start_times(start: time, services: Sequence[Service]) -> List[time]:
    """
    Start time of each service when performed back to back.

    Example:
        >>> chain_start_times(time(10, 0), [haircut_45, wash_0, color_60])
        [datetime.time(10, 0), datetime.time(10, 45), datetime.time(10, 45)]
    """
    anchor = datetime.combine(datetime.min.date(), start)
    times = []
    offset = 0
    for service in services:
        current = anchor + timedelta(minutes=offset)
        if current.date() != anchor.date():
            raise BookingValidationError("Services would run past midnight", field="time")
        times.append(current.time())
        offset += service.duration_minutes
    return times


def chain_groups(services: Sequence[Service]) -> List[List[Service]]:
    """Split services into chained requests: a timed service plus the add-ons after it."""
    groups: List[List[Service]] = []
    for service in services:
        if service.is_addon and groups:
            groups[-1].append(service)
        else:
            groups.append([service])
    return groups


def base_payload(salon_id: str, draft: BookingDraft) -> Dict[str, Any]:
    """Fields shared by every appointment request of a booking."""
    payload: Dict[str, Any] = {
        "salon_id": salon_id,
        "staff_id": draft.staff_id,
        "date": format_wire_date(draft.date),
        "notes": draft.notes,
    }
    if draft.contact is not None:
        payload.update({
            "guest_name": draft.contact.name,
            "guest_phone": draft.contact.phone,
            "guest_email": draft.contact.email,
            "guest_address": draft.contact.address,
        })
    return payload


class BookingSubmitter:
    """Sends a completed draft to the backend using the configured strategy."""

    def __init__(
        self,
        backend: BookingBackend,
        salon_id: str,
        strategy: Optional[SubmissionStrategy] = None
    ):
        self.backend = backend
        self.salon_id = salon_id
        self.strategy = strategy or SubmissionStrategy(config.SUBMISSION_STRATEGY)

    def submit(
        self,
        draft: BookingDraft,
        guest: bool = False,
        created: Sequence[Dict[str, Any]] = ()
    ) -> SubmissionResult:
        """
        Submit a draft.

        Args:
            draft: Draft with services, staff, date and time set
            guest: Book through the guest endpoint
            created: Appointments already created by an earlier partial
                chained submission; the chain resumes after them

        Returns:
            SubmissionResult with every appointment of the booking

        Raises:
            BookingValidationError: Draft incomplete
            BackendValidationError: Backend rejected the first request
            BookingConflictError: Slot taken (nothing was created)
            PartialBookingError: Chained submission failed midway
            BackendError: Any other backend failure (nothing was created)
        """
        services = draft.services
        if not services or draft.staff_id is None or draft.date is None or draft.time is None:
            raise BookingValidationError("Booking is incomplete")

        if self.strategy == SubmissionStrategy.COMBINED:
            return self._submit_combined(draft, services, guest)
        return self._submit_chained(draft, services, guest, list(created))

    def _submit_combined(
        self,
        draft: BookingDraft,
        services: List[Service],
        guest: bool
    ) -> SubmissionResult:
        primary, *additional = services
        payload = base_payload(self.salon_id, draft)
        payload.update({
            "service_id": primary.id,
            "additional_services": [service.id for service in additional],
            "time": format_wire_time(draft.time),
        })
        appointment = self.backend.create_appointment(payload, guest=guest)
        return SubmissionResult(SubmissionStrategy.COMBINED, [appointment])

    def _submit_chained(
        self,
        draft: BookingDraft,
        services: List[Service],
        guest: bool,
        created: List[Dict[str, Any]]
    ) -> SubmissionResult:
        groups = chain_groups(services)
        start_times = chain_start_times(draft.time, [group[0] for group in groups])

        for index in range(len(created), len(groups)):
            primary, *addons = groups[index]
            payload = base_payload(self.salon_id, draft)
            payload.update({
                "service_id": primary.id,
                "time": format_wire_time(start_times[index]),
            })
            if addons:
                payload["additional_services"] = [addon.id for addon in addons]
            try:
                appointment = self.backend.create_appointment(payload, guest=guest)
            except BackendError as exc:
                if not created:
                    raise
                logger.error(
                    "chained_submission_partial_failure",
                    created=len(created),
                    failed_index=index,
                    total=len(groups),
                    error=str(exc)
                )
                raise PartialBookingError(
                    f"Booked {len(created)} of {len(groups)} appointments; "
                    f"appointment {index + 1} failed: {exc}",
                    created=list(created),
                    failed_index=index,
                    cause=exc,
                ) from exc
            created.append(appointment)

        return SubmissionResult(SubmissionStrategy.CHAINED, created)
