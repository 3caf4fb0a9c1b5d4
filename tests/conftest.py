"""Shared test fixtures.

Calendar used throughout: January 2030. 2030-01-07 is a Monday;
weekends are 5/6, 12/13, 19/20 and 26/27.
"""
from datetime import date, datetime, time

import pytest

from salon_booking.availability import AppointmentBook
from salon_booking.models import (
    Appointment,
    AppointmentStatus,
    Salon,
    SalonDayHours,
    Service,
    Staff,
    StaffDayHours,
)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]

MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SATURDAY = date(2030, 1, 12)


@pytest.fixture
def now() -> datetime:
    """Monday morning before opening."""
    return datetime(2030, 1, 7, 8, 0)


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def salon() -> Salon:
    """Salon open 09:00-17:00 Monday to Friday."""
    return Salon(
        id="1",
        name="Studio",
        working_hours={
            day: SalonDayHours(open=time(9), close=time(17), is_open=True) for day in WEEKDAYS
        },
    )


@pytest.fixture
def haircut() -> Service:
    return Service(id="1", name="Haircut", duration_minutes=45, price=25)


@pytest.fixture
def coloring() -> Service:
    return Service(id="2", name="Coloring", duration_minutes=90, price=60, discount_price=50)


@pytest.fixture
def wash() -> Service:
    """Zero-duration add-on."""
    return Service(id="3", name="Hair wash", duration_minutes=0, price=5)


@pytest.fixture
def services(haircut, coloring, wash):
    return [haircut, coloring, wash]


@pytest.fixture
def ana() -> Staff:
    """Works 09:00-17:00 Monday to Friday, does everything."""
    return Staff(
        id="10",
        name="Ana",
        working_hours={
            day: StaffDayHours(start=time(9), end=time(17), is_working=True) for day in WEEKDAYS
        },
        service_ids={"1", "2", "3"},
    )


@pytest.fixture
def marko() -> Staff:
    """Works 12:00-16:00 Monday to Wednesday, no coloring."""
    return Staff(
        id="20",
        name="Marko",
        working_hours={
            day: StaffDayHours(start=time(12), end=time(16), is_working=True) for day in WEEKDAYS[:3]
        },
        service_ids={"1", "3"},
    )


@pytest.fixture
def staff(ana, marko):
    return [ana, marko]


@pytest.fixture
def book() -> AppointmentBook:
    return AppointmentBook()


@pytest.fixture
def make_appointment():
    """Factory for appointments; times given as "HH:MM"."""
    counter = iter(range(1, 10_000))

    def _create(
        start: str,
        end: str,
        day: date = MONDAY,
        staff_id: str = "10",
        status: AppointmentStatus = AppointmentStatus.CONFIRMED
    ) -> Appointment:
        return Appointment(
            id=str(next(counter)),
            date=day,
            start_time=start,
            end_time=end,
            staff_id=staff_id,
            status=status,
        )

    return _create
