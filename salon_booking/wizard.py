"""Step-wise booking wizard.

Pattern: explicit state machine. Every step change goes through
validate_transition() against VALID_TRANSITIONS; selections are validated
locally before any backend call and failures are recorded on the wizard as
a correctable `error` in addition to being raised.

Flow:
    CHOOSING_AUTH_PATH (guest only) -> SELECTING_SERVICES -> SELECTING_STAFF
    -> SELECTING_DATE -> SELECTING_TIME -> COLLECTING_CONTACT_INFO (guest only)
    -> SUBMITTING -> SUCCEEDED | FAILED
"""
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence

from pydantic import ValidationError

from salon_booking.availability import SlotSource
from salon_booking.capacity import is_fully_booked
from salon_booking.errors import (
    BackendError,
    BackendValidationError,
    BookingConflictError,
    BookingValidationError,
    PartialBookingError,
    WizardStateError,
)
from salon_booking.exclusions import check_date
from salon_booking.logging_config import generate_session_id, get_logger
from salon_booking.models import BookingDraft, DayCapacity, GuestContact, Salon, Service, Staff
from salon_booking.slots import eligible_staff, filter_past_slots
from salon_booking.submission import BookingSubmitter, SubmissionResult

logger = get_logger(__name__)

CONFLICT_MESSAGE = "This time was just booked by someone else. Please choose another time."


class WizardStep(str, Enum):
    CHOOSING_AUTH_PATH = "choosing_auth_path"
    SELECTING_SERVICES = "selecting_services"
    SELECTING_STAFF = "selecting_staff"
    SELECTING_DATE = "selecting_date"
    SELECTING_TIME = "selecting_time"
    COLLECTING_CONTACT_INFO = "collecting_contact_info"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureKind(str, Enum):
    CONFLICT = "conflict"
    VALIDATION = "validation"
    OTHER = "other"


# Pattern: Current step → [allowed next steps]
VALID_TRANSITIONS: Dict[WizardStep, List[WizardStep]] = {
    WizardStep.CHOOSING_AUTH_PATH: [
        WizardStep.SELECTING_SERVICES,
    ],
    WizardStep.SELECTING_SERVICES: [
        WizardStep.SELECTING_STAFF,
        WizardStep.CHOOSING_AUTH_PATH,  # back (guest)
    ],
    WizardStep.SELECTING_STAFF: [
        WizardStep.SELECTING_DATE,
        WizardStep.SELECTING_SERVICES,  # back
    ],
    WizardStep.SELECTING_DATE: [
        WizardStep.SELECTING_TIME,
        WizardStep.SELECTING_STAFF,  # back
    ],
    WizardStep.SELECTING_TIME: [
        WizardStep.COLLECTING_CONTACT_INFO,  # guest
        WizardStep.SUBMITTING,  # authenticated
        WizardStep.SELECTING_DATE,  # back
    ],
    WizardStep.COLLECTING_CONTACT_INFO: [
        WizardStep.SUBMITTING,
        WizardStep.SELECTING_TIME,  # back
    ],
    WizardStep.SUBMITTING: [
        WizardStep.SUCCEEDED,
        WizardStep.FAILED,
    ],
    WizardStep.FAILED: [
        WizardStep.SUBMITTING,  # retry with the same draft
        WizardStep.SELECTING_TIME,  # conflict recovery
        WizardStep.COLLECTING_CONTACT_INFO,  # fix contact after a rejected submission
    ],
    WizardStep.SUCCEEDED: [],
}


def validate_transition(current: WizardStep, intended: WizardStep) -> bool:
    """
    Validate wizard step transition.

    Args:
        current: Current step
        intended: Intended next step

    Returns:
        True if transition is valid

    Example:
        >>> validate_transition(WizardStep.SELECTING_STAFF, WizardStep.SELECTING_DATE)
        True
    """
    return intended in VALID_TRANSITIONS.get(current, [])


class WizardSnapshot(NamedTuple):
    """Everything a UI needs to render the wizard."""
    step: WizardStep
    can_proceed: bool
    error: Optional[str]
    services: List[Service]
    staff_id: Optional[str]
    date: Optional[date]
    time: Optional[time]
    candidate_slots: List[time]
    total_duration: int
    total_price: float
    failure_kind: Optional[FailureKind]
    created_appointments: List[Dict[str, Any]]


class BookingWizard:
    """
    One booking session.

    The wizard owns its draft; nothing is shared between sessions except
    the slot source and submitter passed in.
    """

    def __init__(
        self,
        salon: Salon,
        staff: Sequence[Staff],
        services: Sequence[Service],
        slot_source: SlotSource,
        submitter: BookingSubmitter,
        guest: bool = False,
        clock: Callable[[], datetime] = datetime.now,
        month_capacity: Optional[Mapping[date, DayCapacity]] = None
    ):
        self.salon = salon
        self.staff = list(staff)
        self.services = list(services)
        self.slot_source = slot_source
        self.submitter = submitter
        self.guest = guest
        self._clock = clock
        self.month_capacity: Mapping[date, DayCapacity] = month_capacity or {}

        self.session_id = generate_session_id()
        self.logger = logger.bind(session_id=self.session_id, guest=guest)
        self._reset()

    def _reset(self):
        self.draft = BookingDraft()
        self.step = WizardStep.CHOOSING_AUTH_PATH if self.guest else WizardStep.SELECTING_SERVICES
        self.error: Optional[str] = None
        self.candidate_slots: List[time] = []
        self.failure_kind: Optional[FailureKind] = None
        self.created_appointments: List[Dict[str, Any]] = []
        self.result: Optional[SubmissionResult] = None

    # ------------------------------------------------------------------
    # internals

    def _transition(self, intended: WizardStep):
        if not validate_transition(self.step, intended):
            raise WizardStateError(
                f"Cannot move from {self.step.value} to {intended.value}"
            )
        self.logger.info("wizard_transition", from_step=self.step.value, to_step=intended.value)
        self.step = intended

    def _require_step(self, *steps: WizardStep):
        if self.step not in steps:
            raise WizardStateError(
                f"Operation not allowed in step {self.step.value}"
            )

    def _reject(self, message: str, field: Optional[str] = None):
        self.error = message
        self.logger.info("wizard_selection_rejected", field=field, reason=message)
        raise BookingValidationError(message, field=field)

    def _find_service(self, service_id: str) -> Service:
        for service in self.services:
            if service.id == str(service_id):
                return service
        self._reject(f"Unknown service: {service_id}", field="services")

    def _find_staff(self, staff_id: str) -> Staff:
        for member in self.staff:
            if member.id == str(staff_id):
                return member
        self._reject(f"Unknown staff member: {staff_id}", field="staff")

    @property
    def selected_staff(self) -> Optional[Staff]:
        if self.draft.staff_id is None:
            return None
        return next((m for m in self.staff if m.id == self.draft.staff_id), None)

    def _services_problem(self) -> Optional[str]:
        slots = self.draft.service_slots
        if not slots or any(service is None for service in slots):
            return "Select a service for every row"
        if slots[0].is_addon:
            return "The first service must have a duration; add-ons can only be added after it"
        if self.draft.total_duration <= 0:
            return "You cannot book only add-on services"
        return None

    def _staff_problem(self) -> Optional[str]:
        staff = self.selected_staff
        if staff is None:
            return "Select a staff member"
        if not all(staff.can_perform(service) for service in self.draft.services):
            return f"{staff.name or staff.id} cannot perform all selected services"
        return None

    def _date_problem(self, day: Optional[date]) -> Optional[str]:
        if day is None:
            return "Select a date"
        if day < self._clock().date():
            return "Date is in the past"
        availability = check_date(day, self.salon, self.selected_staff)
        if not availability.available:
            return f"Date is not available ({availability.reason})"
        if is_fully_booked(self.month_capacity.get(day)):
            return "Date is fully booked"
        return None

    def _on_services_changed(self):
        self.draft.staff_id = None
        self.draft.date = None
        self.draft.time = None
        self.candidate_slots = []

        if self.draft.services:
            candidates = self.staff_candidates()
            if len(candidates) == 1:
                self.draft.staff_id = candidates[0].id
                self.logger.info("staff_auto_selected", staff_id=candidates[0].id)

    def _load_slots(self) -> List[time]:
        staff = self.selected_staff
        try:
            raw = self.slot_source.get_slots(self.draft.date, staff, self.draft.services)
        except BackendError as exc:
            self.logger.warning("slot_query_failed", date=self.draft.date.isoformat(), error=str(exc))
            self.error = f"Could not load free times: {exc}"
            self.candidate_slots = []
            return []
        self.candidate_slots = filter_past_slots(raw, self.draft.date, self._clock())
        self.logger.info(
            "slots_loaded",
            date=self.draft.date.isoformat(),
            staff_id=staff.id,
            count=len(self.candidate_slots)
        )
        return self.candidate_slots

    # ------------------------------------------------------------------
    # auth path

    def continue_as_guest(self):
        self._require_step(WizardStep.CHOOSING_AUTH_PATH)
        self.error = None
        self._transition(WizardStep.SELECTING_SERVICES)

    # ------------------------------------------------------------------
    # services

    def add_service_slot(self):
        """Append an empty service row."""
        self._require_step(WizardStep.SELECTING_SERVICES)
        self.draft.service_slots.append(None)

    def select_service(self, index: int, service_id: str):
        """
        Fill service row `index`.

        Raises:
            BookingValidationError: Unknown service, or an add-on (zero
                duration) chosen as the first service
        """
        self._require_step(WizardStep.SELECTING_SERVICES)
        if not 0 <= index < len(self.draft.service_slots):
            raise WizardStateError(f"No service row {index}")

        service = self._find_service(service_id)
        if index == 0 and service.is_addon:
            self._reject(
                "The first service must have a duration; add-ons can only be added after it",
                field="services"
            )

        self.error = None
        self.draft.service_slots[index] = service
        self._on_services_changed()

    def remove_service(self, index: int):
        """Remove service row `index`; the last remaining row is cleared instead."""
        self._require_step(WizardStep.SELECTING_SERVICES)
        if not 0 <= index < len(self.draft.service_slots):
            raise WizardStateError(f"No service row {index}")

        if len(self.draft.service_slots) == 1:
            self.draft.service_slots[0] = None
        else:
            del self.draft.service_slots[index]

        self.error = None
        if self.draft.services and self.draft.total_duration <= 0:
            self.error = "You cannot book only add-on services"
        self._on_services_changed()

    def staff_candidates(self) -> List[Staff]:
        """Staff able to perform every selected service."""
        return eligible_staff(self.staff, self.draft.services)

    # ------------------------------------------------------------------
    # staff / date / time

    def select_staff(self, staff_id: str):
        self._require_step(WizardStep.SELECTING_STAFF)
        member = self._find_staff(staff_id)
        if not all(member.can_perform(service) for service in self.draft.services):
            self._reject(
                f"{member.name or member.id} cannot perform all selected services",
                field="staff"
            )

        self.error = None
        if member.id != self.draft.staff_id:
            self.draft.staff_id = member.id
            self.draft.date = None
            self.draft.time = None
            self.candidate_slots = []

    def select_date(self, day: date) -> List[time]:
        """
        Choose a date and load its free start times.

        Returns:
            Candidate start times for the date (may be empty)

        Raises:
            BookingValidationError: Past, excluded or fully booked date
        """
        self._require_step(WizardStep.SELECTING_DATE)
        problem = self._date_problem(day)
        if problem:
            self._reject(problem, field="date")

        self.error = None
        self.draft.date = day
        self.draft.time = None
        slots = self._load_slots()
        if not slots and self.error is None:
            self.error = "No free times on this date"
        return slots

    def refresh_slots(self) -> List[time]:
        """Re-query slots for the current staff, date and services."""
        self._require_step(WizardStep.SELECTING_DATE, WizardStep.SELECTING_TIME)
        if self.draft.date is None or self.selected_staff is None:
            raise WizardStateError("Select staff and date before loading times")
        return self._load_slots()

    def select_time(self, value: time):
        self._require_step(WizardStep.SELECTING_TIME)
        if value not in self.candidate_slots:
            self._reject(f"{value.strftime('%H:%M')} is not an available time", field="time")
        self.error = None
        self.failure_kind = None
        self.draft.time = value

    # ------------------------------------------------------------------
    # contact / notes

    def set_notes(self, notes: str):
        self.draft.notes = notes or ""

    def set_contact(
        self,
        name: str,
        phone: str,
        email: Optional[str] = None,
        address: Optional[str] = None
    ) -> GuestContact:
        """
        Validate and store guest contact details.

        Raises:
            BookingValidationError: First failing field with its message
        """
        self._require_step(WizardStep.COLLECTING_CONTACT_INFO)
        try:
            contact = GuestContact(name=name, phone=phone, email=email, address=address)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else None
            message = first["msg"].removeprefix("Value error, ")
            self._reject(message, field=field)

        self.error = None
        self.draft.contact = contact
        return contact

    # ------------------------------------------------------------------
    # navigation

    def can_proceed(self) -> bool:
        """Whether next() would pass the current step's guard."""
        step = self.step
        if step == WizardStep.CHOOSING_AUTH_PATH:
            return True
        if step == WizardStep.SELECTING_SERVICES:
            return self._services_problem() is None
        if step == WizardStep.SELECTING_STAFF:
            return self._staff_problem() is None
        if step == WizardStep.SELECTING_DATE:
            return self._date_problem(self.draft.date) is None and bool(self.candidate_slots)
        if step == WizardStep.SELECTING_TIME:
            return self.draft.time is not None and self.draft.time in self.candidate_slots
        if step == WizardStep.COLLECTING_CONTACT_INFO:
            return self.draft.contact is not None
        if step == WizardStep.FAILED:
            return self.failure_kind != FailureKind.CONFLICT
        return False

    def next(self) -> WizardStep:
        """
        Advance one step if the current step's guard passes.

        From SELECTING_TIME (authenticated) or COLLECTING_CONTACT_INFO
        (guest) this submits the booking.

        Raises:
            BookingValidationError: Guard failed (message also in `error`)
            WizardStateError: No forward step from here
        """
        step = self.step
        if step == WizardStep.CHOOSING_AUTH_PATH:
            self.continue_as_guest()
        elif step == WizardStep.SELECTING_SERVICES:
            problem = self._services_problem()
            if problem:
                self._reject(problem, field="services")
            self.error = None
            self._transition(WizardStep.SELECTING_STAFF)
        elif step == WizardStep.SELECTING_STAFF:
            problem = self._staff_problem()
            if problem:
                self._reject(problem, field="staff")
            self.error = None
            self._transition(WizardStep.SELECTING_DATE)
        elif step == WizardStep.SELECTING_DATE:
            problem = self._date_problem(self.draft.date)
            if problem:
                self._reject(problem, field="date")
            if not self.candidate_slots:
                self._reject("No free times on this date", field="date")
            self.error = None
            self._transition(WizardStep.SELECTING_TIME)
        elif step == WizardStep.SELECTING_TIME:
            if self.draft.time is None or self.draft.time not in self.candidate_slots:
                self._reject("Select an available time", field="time")
            self.error = None
            if self.guest:
                self._transition(WizardStep.COLLECTING_CONTACT_INFO)
            else:
                self.submit()
        elif step in (WizardStep.COLLECTING_CONTACT_INFO, WizardStep.FAILED):
            self.submit()
        else:
            raise WizardStateError(f"No next step from {step.value}")
        return self.step

    def back(self) -> WizardStep:
        """Go back exactly one step."""
        previous = {
            WizardStep.SELECTING_STAFF: WizardStep.SELECTING_SERVICES,
            WizardStep.SELECTING_DATE: WizardStep.SELECTING_STAFF,
            WizardStep.SELECTING_TIME: WizardStep.SELECTING_DATE,
            WizardStep.COLLECTING_CONTACT_INFO: WizardStep.SELECTING_TIME,
        }
        if self.step == WizardStep.SELECTING_SERVICES and self.guest:
            target = WizardStep.CHOOSING_AUTH_PATH
        elif self.step == WizardStep.FAILED:
            # The selection is locked once part of a chained booking exists
            if self.created_appointments:
                raise WizardStateError("Some appointments were already created; retry the submission")
            target = WizardStep.COLLECTING_CONTACT_INFO if self.guest else WizardStep.SELECTING_TIME
        elif self.step in previous:
            target = previous[self.step]
        else:
            raise WizardStateError(f"Cannot go back from {self.step.value}")

        self.error = None
        self._transition(target)
        return self.step

    # ------------------------------------------------------------------
    # submission

    def submit(self) -> Optional[SubmissionResult]:
        """
        Submit the draft.

        Local validation problems are raised. Backend failures are recorded
        instead: the wizard ends in FAILED with `failure_kind` set, or back
        in SELECTING_TIME after a conflict.

        Returns:
            SubmissionResult on success, None on backend failure
        """
        ready_step = WizardStep.COLLECTING_CONTACT_INFO if self.guest else WizardStep.SELECTING_TIME
        self._require_step(ready_step, WizardStep.FAILED)
        if self.step == WizardStep.FAILED and self.failure_kind == FailureKind.CONFLICT:
            raise WizardStateError("Choose a new time before resubmitting")
        if self.guest and self.draft.contact is None:
            self._reject("Contact details are required", field="contact")
        if self.draft.time is None:
            self._reject("Select an available time", field="time")

        self.error = None
        self._transition(WizardStep.SUBMITTING)

        try:
            result = self.submitter.submit(
                self.draft,
                guest=self.guest,
                created=self.created_appointments,
            )
        except PartialBookingError as exc:
            self.created_appointments = list(exc.created)
            self._fail(FailureKind.OTHER, str(exc))
            return None
        except BookingConflictError as exc:
            self._recover_from_conflict(exc)
            return None
        except (BackendValidationError, BookingValidationError) as exc:
            self._fail(FailureKind.VALIDATION, str(exc))
            return None
        except BackendError as exc:
            self._fail(FailureKind.OTHER, str(exc))
            return None

        self.result = result
        self.created_appointments = list(result.appointments)
        self.failure_kind = None
        self._transition(WizardStep.SUCCEEDED)
        self.logger.info(
            "booking_succeeded",
            appointments=len(result.appointments),
            strategy=result.strategy.value
        )
        return result

    def _fail(self, kind: FailureKind, message: str):
        self.failure_kind = kind
        self.error = message
        self._transition(WizardStep.FAILED)
        self.logger.warning(
            "booking_failed",
            failure_kind=kind.value,
            created=len(self.created_appointments),
            error=message
        )

    def _recover_from_conflict(self, exc: BookingConflictError):
        self._fail(FailureKind.CONFLICT, CONFLICT_MESSAGE)
        self.draft.time = None
        self._transition(WizardStep.SELECTING_TIME)
        self.error = CONFLICT_MESSAGE
        self.logger.info("conflict_recovery", detail=str(exc))
        self._load_slots()

    # ------------------------------------------------------------------
    # lifecycle

    def close(self):
        """Discard the draft and start over."""
        self.logger.info("wizard_closed", step=self.step.value)
        self._reset()

    def snapshot(self) -> WizardSnapshot:
        return WizardSnapshot(
            step=self.step,
            can_proceed=self.can_proceed(),
            error=self.error,
            services=self.draft.services,
            staff_id=self.draft.staff_id,
            date=self.draft.date,
            time=self.draft.time,
            candidate_slots=list(self.candidate_slots),
            total_duration=self.draft.total_duration,
            total_price=self.draft.total_price,
            failure_kind=self.failure_kind,
            created_appointments=list(self.created_appointments),
        )
