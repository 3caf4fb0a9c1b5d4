"""Tests for day capacity aggregation."""
from datetime import date, time

import pytest

from salon_booking.capacity import (
    OccupancyModel,
    calculate_day_capacity,
    calculate_multi_day_capacity,
    capacity_status,
    is_fully_booked,
    total_slots_for,
)
from salon_booking.models import AppointmentStatus, CapacityColor, CapacityStatus, TimeWindow

MONDAY = date(2030, 1, 7)
NINE_TO_FIVE = TimeWindow(start=time(9), end=time(17))


def _half_hours(make_appointment, count, status=AppointmentStatus.CONFIRMED):
    appointments = []
    for i in range(count):
        start = 9 * 60 + i * 30
        appointments.append(make_appointment(
            f"{start // 60:02d}:{start % 60:02d}",
            f"{(start + 30) // 60:02d}:{(start + 30) % 60:02d}",
            status=status,
        ))
    return appointments


class TestCapacityStatus:
    """Percentage banding."""

    @pytest.mark.parametrize("percentage,expected", [
        (0, (CapacityStatus.EMPTY, CapacityColor.GRAY)),
        (1, (CapacityStatus.AVAILABLE, CapacityColor.GREEN)),
        (69, (CapacityStatus.AVAILABLE, CapacityColor.GREEN)),
        (70, (CapacityStatus.BUSY, CapacityColor.YELLOW)),
        (99, (CapacityStatus.BUSY, CapacityColor.YELLOW)),
        (100, (CapacityStatus.FULL, CapacityColor.RED)),
        (125, (CapacityStatus.FULL, CapacityColor.RED)),
    ])
    def test_bands(self, percentage, expected):
        assert capacity_status(percentage) == expected


class TestDayCapacity:

    def test_empty_day(self):
        """09:00-17:00 with no appointments: 16 slots, 0 %, gray."""
        capacity = calculate_day_capacity([], NINE_TO_FIVE, MONDAY)

        assert capacity.total_slots == 16
        assert capacity.occupied_slots == 0
        assert capacity.free_slots == 16
        assert capacity.percentage == 0
        assert capacity.color == CapacityColor.GRAY
        assert capacity.date == MONDAY

    def test_twelve_confirmed_is_busy(self, make_appointment):
        capacity = calculate_day_capacity(_half_hours(make_appointment, 12), NINE_TO_FIVE)

        assert capacity.percentage == 75
        assert capacity.status == CapacityStatus.BUSY
        assert capacity.color == CapacityColor.YELLOW

    def test_full_day(self, make_appointment):
        capacity = calculate_day_capacity(_half_hours(make_appointment, 16), NINE_TO_FIVE)

        assert capacity.color == CapacityColor.RED
        assert capacity.free_slots == 0
        assert is_fully_booked(capacity)

    def test_pending_and_cancelled_do_not_count(self, make_appointment):
        appointments = (
            _half_hours(make_appointment, 2, AppointmentStatus.PENDING)
            + _half_hours(make_appointment, 2, AppointmentStatus.CANCELLED)
        )

        assert calculate_day_capacity(appointments, NINE_TO_FIVE).occupied_slots == 0

    def test_in_progress_and_completed_count(self, make_appointment):
        appointments = (
            _half_hours(make_appointment, 1, AppointmentStatus.IN_PROGRESS)
            + _half_hours(make_appointment, 1, AppointmentStatus.COMPLETED)
        )

        assert calculate_day_capacity(appointments, NINE_TO_FIVE).occupied_slots == 2

    def test_unknown_hours_default_to_sixteen(self):
        assert total_slots_for(None) == 16

    def test_zero_length_window(self):
        """No slots at all means 0 %, not a division error."""
        window = TimeWindow(start=time(9), end=time(9, 15))

        capacity = calculate_day_capacity([], window)

        assert capacity.total_slots == 0
        assert capacity.percentage == 0

    def test_rounding_is_half_up(self, make_appointment):
        """1 of 8 slots is 12.5 %, reported as 13."""
        window = TimeWindow(start=time(9), end=time(13))

        capacity = calculate_day_capacity(_half_hours(make_appointment, 1), window)

        assert capacity.percentage == 13

    def test_count_model_ignores_length(self, make_appointment):
        """A 2-hour appointment occupies one slot in the count model."""
        long_one = [make_appointment("09:00", "11:00")]

        assert calculate_day_capacity(long_one, NINE_TO_FIVE).occupied_slots == 1

    def test_minutes_model(self, make_appointment):
        long_one = [make_appointment("09:00", "11:00"), make_appointment("12:00", "12:45")]

        capacity = calculate_day_capacity(long_one, NINE_TO_FIVE, model=OccupancyModel.MINUTES)

        # 165 minutes -> 6 half-hour slots
        assert capacity.occupied_slots == 6


def test_multi_day_capacity(make_appointment):
    tuesday = date(2030, 1, 8)
    appointments = _half_hours(make_appointment, 4) + [
        make_appointment("09:00", "09:30", day=tuesday)
    ]

    result = calculate_multi_day_capacity(
        appointments,
        [MONDAY, tuesday, date(2030, 1, 12)],
        {MONDAY: NINE_TO_FIVE, tuesday: NINE_TO_FIVE},
    )

    assert [c.occupied_slots for c in result] == [4, 1, 0]
    assert [c.percentage for c in result] == [25, 6, 0]
    assert result[2].total_slots == 16


def test_is_fully_booked_without_data():
    assert not is_fully_booked(None)
