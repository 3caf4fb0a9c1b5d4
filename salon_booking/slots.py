"""Slot generation by interval subtraction.

Algorithm:
    1. Closed working window -> no slots (the day renders as "closed")
    2. Walk the day from the window start, splitting it into FREE gaps and
       OCCUPIED appointment blocks (appointments sorted by start)
    3. Inside each FREE block emit ticks aligned to the block start while
       tick + total duration still fits (block end is inclusive)
    4. For today, keep only starts strictly after now + buffer
"""
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, List, NamedTuple, Optional, Sequence

from salon_booking import config
from salon_booking.models import (
    Appointment,
    Service,
    Staff,
    TimeWindow,
    minutes_of_day,
    time_from_minutes,
)


class BlockKind(str, Enum):
    FREE = "free"
    OCCUPIED = "occupied"


class DayBlock(NamedTuple):
    """Contiguous part of a working day, in minutes since midnight."""
    kind: BlockKind
    start: int
    end: int
    appointment_id: Optional[str] = None


def total_duration(services: Sequence[Service]) -> int:
    return sum(service.duration_minutes for service in services)


def eligible_staff(staff: Iterable[Staff], services: Sequence[Service]) -> List[Staff]:
    """
    Staff members capable of every selected service.

    With no services selected yet, everyone is a candidate.
    """
    staff = list(staff)
    if not services:
        return staff
    return [
        member for member in staff
        if all(member.can_perform(service) for service in services)
    ]


def build_day_blocks(
    window: TimeWindow,
    appointments: Iterable[Appointment]
) -> List[DayBlock]:
    """
    Split a working window into FREE and OCCUPIED blocks.

    Cancelled appointments are ignored and appointments are clipped to the
    window. Appointments of one staff member are expected not to overlap.

    Args:
        window: Working window of the day
        appointments: Staff member's appointments on that day

    Returns:
        Blocks ordered by start, covering the whole window
    """
    window_start = window.start_minutes
    window_end = window.end_minutes
    active = sorted(
        (appt for appt in appointments if appt.is_active),
        key=lambda appt: appt.start_minutes
    )

    blocks: List[DayBlock] = []
    cursor = window_start

    for appt in active:
        start = max(appt.start_minutes, window_start)
        end = min(appt.end_minutes, window_end)
        if end <= cursor:
            continue
        if start >= window_end:
            break

        if cursor < start:
            blocks.append(DayBlock(BlockKind.FREE, cursor, start))
        blocks.append(DayBlock(BlockKind.OCCUPIED, max(start, cursor), end, appt.id))
        cursor = end

    if cursor < window_end:
        blocks.append(DayBlock(BlockKind.FREE, cursor, window_end))

    return blocks


def candidate_starts(
    blocks: Iterable[DayBlock],
    duration_minutes: int,
    tick_minutes: int = config.SLOT_TICK_MINUTES
) -> List[int]:
    """Tick-aligned start minutes whose full duration fits a FREE block."""
    starts = []
    for block in blocks:
        if block.kind != BlockKind.FREE:
            continue
        tick = block.start
        while tick + duration_minutes <= block.end:
            starts.append(tick)
            tick += tick_minutes
    return starts


def filter_past_slots(
    slots: Iterable[time],
    day: date,
    now: datetime,
    buffer_minutes: int = config.TODAY_BUFFER_MINUTES
) -> List[time]:
    """
    Drop starts that are no longer bookable.

    Only today is filtered: a start must be strictly after now + buffer.
    Past days have no bookable starts at all.
    """
    slots = list(slots)
    today = now.date()
    if day > today:
        return slots
    if day < today:
        return []

    cutoff = now + timedelta(minutes=buffer_minutes)
    return [slot for slot in slots if datetime.combine(day, slot) > cutoff]


def generate_slots(
    day: date,
    window: Optional[TimeWindow],
    appointments: Iterable[Appointment],
    duration_minutes: int,
    now: Optional[datetime] = None,
    tick_minutes: int = config.SLOT_TICK_MINUTES,
    today_buffer_minutes: int = config.TODAY_BUFFER_MINUTES
) -> List[time]:
    """
    Compute bookable start times for one staff member on one day.

    Args:
        day: Date to generate slots for
        window: Resolved working window (None when closed)
        appointments: The staff member's appointments (other dates are ignored)
        duration_minutes: Total duration of all selected services
        now: Current time; enables today filtering when given
        tick_minutes: Start-time granularity
        today_buffer_minutes: Minimum lead time for slots today

    Returns:
        Ascending list of start times

    Raises:
        ValueError: If duration_minutes is not positive

    Example:
        >>> generate_slots(day, TimeWindow(start=time(10), end=time(12)), [], 60)
        [datetime.time(10, 0), datetime.time(10, 30), datetime.time(11, 0)]
    """
    if duration_minutes <= 0:
        raise ValueError("Total service duration must be greater than zero")
    if window is None:
        return []

    day_appointments = [appt for appt in appointments if appt.date == day]
    blocks = build_day_blocks(window, day_appointments)
    slots = [
        time_from_minutes(start)
        for start in candidate_starts(blocks, duration_minutes, tick_minutes)
    ]

    if now is not None:
        slots = filter_past_slots(slots, day, now, today_buffer_minutes)

    return slots


def slot_fits(
    start: time,
    duration_minutes: int,
    window: Optional[TimeWindow],
    appointments: Iterable[Appointment]
) -> bool:
    """
    Check a single start time against the window and existing appointments.

    Ignores tick alignment; used to re-validate a booking request.
    """
    if window is None or duration_minutes <= 0:
        return False

    begin = minutes_of_day(start)
    end = begin + duration_minutes
    if begin < window.start_minutes or end > window.end_minutes:
        return False

    return not any(
        appt.is_active and appt.start_minutes < end and appt.end_minutes > begin
        for appt in appointments
    )
