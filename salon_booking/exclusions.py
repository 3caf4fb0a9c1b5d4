"""Date exclusion rules (non-working days, vacations, breaks).

Check order is fixed and the first match wins:
1. Salon closed on that weekday
2. Active vacation covering the date
3. Active break on / covering the date
4. Selected staff not working on that weekday
"""
from datetime import date
from typing import NamedTuple, Optional

from salon_booking.models import Salon, Staff, weekday_name
from salon_booking.working_hours import resolve_window


REASON_NON_WORKING_DAY = "non-working day"
REASON_VACATION = "vacation"
REASON_BREAK = "break"
REASON_STAFF_NOT_WORKING = "staff not working"


class DateAvailability(NamedTuple):
    """Result of an exclusion check. reason is set only when blocked."""
    available: bool
    reason: Optional[str] = None


AVAILABLE = DateAvailability(available=True)


def check_date(
    day: date,
    salon: Salon,
    staff: Optional[Staff] = None
) -> DateAvailability:
    """
    Decide whether a date is blocked for booking.

    Args:
        day: Date to check
        salon: Salon with weekly hours, vacations and breaks
        staff: Currently selected staff member, if any

    Returns:
        DateAvailability with the first matching reason
    """
    weekday = weekday_name(day)

    if resolve_window(weekday, salon=salon) is None:
        return DateAvailability(False, REASON_NON_WORKING_DAY)

    for vacation in salon.vacations:
        if vacation.is_active and vacation.covers(day):
            return DateAvailability(False, vacation.title or REASON_VACATION)

    for salon_break in salon.breaks:
        if salon_break.is_active and salon_break.covers(day):
            return DateAvailability(False, salon_break.title or REASON_BREAK)

    if staff is not None and resolve_window(weekday, staff=staff) is None:
        return DateAvailability(False, REASON_STAFF_NOT_WORKING)

    return AVAILABLE
