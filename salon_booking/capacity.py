"""Day capacity aggregation.

Occupancy of a day against its half-hour slot capacity, banded into a
status and colour:

- 100% and above: red (full)
- 70-99%: yellow (busy)
- 1-69%: green (available)
- 0%: gray (empty)

The default model counts appointments, one slot each, regardless of their
real length. The minute-weighted model is available on request but changes
observable percentages.
"""
from collections import defaultdict
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from salon_booking import config
from salon_booking.models import (
    OCCUPYING_STATUSES,
    Appointment,
    CapacityColor,
    CapacityStatus,
    DayCapacity,
    TimeWindow,
)


class OccupancyModel(str, Enum):
    COUNT = "count"
    MINUTES = "minutes"


def capacity_status(percentage: float) -> Tuple[CapacityStatus, CapacityColor]:
    """
    Band an occupancy percentage.

    Args:
        percentage: Occupancy percentage (0-100, may exceed 100)

    Returns:
        Tuple of (status, color)
    """
    if percentage >= config.FULL_THRESHOLD_PERCENT:
        return CapacityStatus.FULL, CapacityColor.RED
    elif percentage >= config.BUSY_THRESHOLD_PERCENT:
        return CapacityStatus.BUSY, CapacityColor.YELLOW
    elif percentage > 0:
        return CapacityStatus.AVAILABLE, CapacityColor.GREEN
    else:
        return CapacityStatus.EMPTY, CapacityColor.GRAY


def total_slots_for(window: Optional[TimeWindow]) -> int:
    """Half-hour slots in a window, with the 8-hour default when unknown."""
    if window is None:
        return config.DEFAULT_TOTAL_SLOTS
    return window.minutes // config.CAPACITY_SLOT_MINUTES


def _occupied_slots(appointments: List[Appointment], model: OccupancyModel) -> int:
    if model == OccupancyModel.MINUTES:
        minutes = sum(appt.end_minutes - appt.start_minutes for appt in appointments)
        return -(-minutes // config.CAPACITY_SLOT_MINUTES)
    return len(appointments)


def calculate_day_capacity(
    appointments: Iterable[Appointment],
    window: Optional[TimeWindow],
    day: Optional[date] = None,
    model: OccupancyModel = OccupancyModel.COUNT
) -> DayCapacity:
    """
    Calculate occupancy of one day.

    Args:
        appointments: All appointments of the day
        window: Working window of the day, None when hours are unknown
        day: Date to stamp on the result
        model: Occupancy model (count by default)

    Returns:
        DayCapacity

    Example:
        >>> calculate_day_capacity([], TimeWindow(start=time(9), end=time(17)))
        DayCapacity(total_slots=16, occupied_slots=0, percentage=0, color='gray', ...)
    """
    total = total_slots_for(window)
    occupying = [appt for appt in appointments if appt.status in OCCUPYING_STATUSES]
    occupied = _occupied_slots(occupying, model)

    # Half-up rounding of occupied / total * 100
    percentage = (occupied * 200 + total) // (2 * total) if total > 0 else 0
    status, color = capacity_status(percentage)

    return DayCapacity(
        date=day,
        total_slots=total,
        occupied_slots=occupied,
        free_slots=max(0, total - occupied),
        percentage=percentage,
        status=status,
        color=color,
    )


def group_appointments_by_date(
    appointments: Iterable[Appointment]
) -> Dict[date, List[Appointment]]:
    grouped: Dict[date, List[Appointment]] = defaultdict(list)
    for appt in appointments:
        grouped[appt.date].append(appt)
    return dict(grouped)


def calculate_multi_day_capacity(
    appointments: Iterable[Appointment],
    dates: Iterable[date],
    windows: Mapping[date, Optional[TimeWindow]],
    model: OccupancyModel = OccupancyModel.COUNT
) -> List[DayCapacity]:
    """
    Calculate capacity for several days (e.g. a month view).

    Args:
        appointments: Appointments across all dates
        dates: Dates to report, in output order
        windows: Working window per date (missing -> default capacity)
        model: Occupancy model

    Returns:
        One DayCapacity per date
    """
    by_date = group_appointments_by_date(appointments)
    return [
        calculate_day_capacity(by_date.get(day, []), windows.get(day), day, model)
        for day in dates
    ]


def is_fully_booked(capacity: Optional[DayCapacity]) -> bool:
    """Full (red) days are unbookable even before any slot query runs."""
    return capacity is not None and capacity.color == CapacityColor.RED
