"""Slot sources: where the wizard and the month probe get start times from.

Two implementations share one seam:
- BackendSlotSource asks the booking backend
- LocalSlotSource runs the engine against an in-memory appointment book

Both return raw start times; "today" filtering is applied by the caller,
which owns the clock.
"""
import threading
from collections import defaultdict
from datetime import date, time
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from salon_booking.backend import BookingBackend
from salon_booking.exclusions import check_date
from salon_booking.models import Appointment, Salon, Service, Staff, TimeWindow
from salon_booking.slots import generate_slots, slot_fits, total_duration
from salon_booking.working_hours import window_for_date


class SlotSource(Protocol):
    """Anything able to list free start times for a staff/date/service set."""

    def get_slots(self, day: date, staff: Staff, services: Sequence[Service]) -> List[time]:
        ...


class BackendSlotSource:
    """Slot source backed by the remote booking service."""

    def __init__(self, backend: BookingBackend, salon_id: str):
        self.backend = backend
        self.salon_id = salon_id

    def get_slots(self, day: date, staff: Staff, services: Sequence[Service]) -> List[time]:
        return self.backend.get_slots(self.salon_id, day, staff.id, services)


class AppointmentBook:
    """
    In-memory appointment store keyed by (staff, date).

    Thread-safe: month scans read it from worker threads while bookings
    are added.
    """

    def __init__(self, appointments: Iterable[Appointment] = ()):
        self._lock = threading.Lock()
        self._by_staff_day: Dict[Tuple[str, date], List[Appointment]] = defaultdict(list)
        for appointment in appointments:
            self.add(appointment)

    def add(self, appointment: Appointment):
        with self._lock:
            self._by_staff_day[(appointment.staff_id, appointment.date)].append(appointment)

    def add_if_free(self, appointment: Appointment, window: Optional[TimeWindow]) -> bool:
        """
        Add an appointment only if its interval still fits the window and
        overlaps no active appointment of the same staff member that day.

        The check and the insert happen under one lock, so two requests for
        the same slot cannot both succeed.

        Returns:
            True if the appointment was added
        """
        key = (appointment.staff_id, appointment.date)
        duration = appointment.end_minutes - appointment.start_minutes
        with self._lock:
            if not slot_fits(appointment.start_time, duration, window, self._by_staff_day.get(key, [])):
                return False
            self._by_staff_day[key].append(appointment)
            return True

    def for_staff(self, staff_id: str, day: date) -> List[Appointment]:
        with self._lock:
            return list(self._by_staff_day.get((staff_id, day), []))

    def for_date(self, day: date) -> List[Appointment]:
        with self._lock:
            return [
                appt
                for (_, appt_day), appts in self._by_staff_day.items()
                if appt_day == day
                for appt in appts
            ]

    def all(self) -> List[Appointment]:
        with self._lock:
            return [appt for appts in self._by_staff_day.values() for appt in appts]


class LocalSlotSource:
    """Slot source computing slots in-process from hours and bookings."""

    def __init__(self, salon: Salon, book: AppointmentBook):
        self.salon = salon
        self.book = book

    def get_slots(self, day: date, staff: Staff, services: Sequence[Service]) -> List[time]:
        if not check_date(day, self.salon, staff).available:
            return []
        return generate_slots(
            day,
            window_for_date(day, staff=staff),
            self.book.for_staff(staff.id, day),
            total_duration(services),
        )
