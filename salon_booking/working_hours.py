"""Working hours resolution.

Resolves the open interval of a single weekday, either for a staff member
or for the salon. The two hierarchies never merge: a staff-scoped query
does not look at salon hours and vice versa.
"""
from datetime import date
from typing import Dict, Optional, Union

from salon_booking.models import (
    Salon,
    SalonDayHours,
    Staff,
    StaffDayHours,
    TimeWindow,
    weekday_name,
)


def _window(start, end) -> Optional[TimeWindow]:
    if start is None or end is None or end <= start:
        return None
    return TimeWindow(start=start, end=end)


def staff_window(weekday: str, staff: Staff) -> Optional[TimeWindow]:
    """Working window of a staff member, or None when not working."""
    hours = staff.working_hours.get(weekday)
    if hours is None or not hours.is_working:
        return None
    return _window(hours.start, hours.end)


def salon_window(weekday: str, salon: Salon) -> Optional[TimeWindow]:
    """Opening window of the salon, or None when closed."""
    hours = salon.working_hours.get(weekday)
    if hours is None or not hours.is_open:
        return None
    return _window(hours.open, hours.close)


def resolve_window(
    weekday: str,
    staff: Optional[Staff] = None,
    salon: Optional[Salon] = None
) -> Optional[TimeWindow]:
    """
    Resolve the working window for one weekday.

    Args:
        weekday: Lowercase weekday name (e.g. "monday")
        staff: Staff member; when given, only the staff's hours are read
        salon: Salon; read only when no staff is given

    Returns:
        TimeWindow, or None when closed

    Example:
        >>> resolve_window("monday", salon=salon)
        TimeWindow(start=datetime.time(9, 0), end=datetime.time(17, 0))
    """
    weekday = weekday.lower()
    if staff is not None:
        return staff_window(weekday, staff)
    if salon is not None:
        return salon_window(weekday, salon)
    raise ValueError("Either staff or salon is required to resolve working hours")


def window_for_date(
    day: date,
    staff: Optional[Staff] = None,
    salon: Optional[Salon] = None
) -> Optional[TimeWindow]:
    return resolve_window(weekday_name(day), staff=staff, salon=salon)


def working_span(
    weekly_hours: Dict[str, Union[SalonDayHours, StaffDayHours]]
) -> Optional[TimeWindow]:
    """
    Earliest start and latest end across all open weekdays.

    Only for sizing calendar grids. Never use it to decide whether a
    time is bookable: a day's own window is the only authority.

    Args:
        weekly_hours: Salon or staff weekly record

    Returns:
        Spanning TimeWindow, or None when no day is open
    """
    earliest = None
    latest = None

    for hours in weekly_hours.values():
        if isinstance(hours, SalonDayHours):
            is_open, start, end = hours.is_open, hours.open, hours.close
        else:
            is_open, start, end = hours.is_working, hours.start, hours.end

        if not is_open or start is None or end is None or end <= start:
            continue
        if earliest is None or start < earliest:
            earliest = start
        if latest is None or end > latest:
            latest = end

    if earliest is None:
        return None
    return TimeWindow(start=earliest, end=latest)
