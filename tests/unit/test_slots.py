"""Tests for slot generation."""
from datetime import date, datetime, time

import pytest

from salon_booking.models import AppointmentStatus, TimeWindow
from salon_booking.slots import (
    BlockKind,
    build_day_blocks,
    eligible_staff,
    filter_past_slots,
    generate_slots,
    slot_fits,
)

MONDAY = date(2030, 1, 7)
TEN_TO_NOON = TimeWindow(start=time(10), end=time(12))
NINE_TO_FIVE = TimeWindow(start=time(9), end=time(17))


class TestBuildDayBlocks:
    """Window minus appointments."""

    def test_empty_day_is_one_free_block(self):
        blocks = build_day_blocks(TEN_TO_NOON, [])

        assert len(blocks) == 1
        assert blocks[0].kind == BlockKind.FREE
        assert (blocks[0].start, blocks[0].end) == (600, 720)

    def test_appointment_splits_window(self, make_appointment):
        blocks = build_day_blocks(NINE_TO_FIVE, [make_appointment("10:00", "11:00")])

        assert [(b.kind, b.start, b.end) for b in blocks] == [
            (BlockKind.FREE, 540, 600),
            (BlockKind.OCCUPIED, 600, 660),
            (BlockKind.FREE, 660, 1020),
        ]
        assert blocks[1].appointment_id is not None

    def test_appointments_are_clipped_to_window(self, make_appointment):
        blocks = build_day_blocks(TEN_TO_NOON, [make_appointment("09:00", "10:30")])

        assert blocks[0].kind == BlockKind.OCCUPIED
        assert (blocks[0].start, blocks[0].end) == (600, 630)

    def test_cancelled_appointments_are_ignored(self, make_appointment):
        cancelled = make_appointment("10:00", "11:00", status=AppointmentStatus.CANCELLED)

        blocks = build_day_blocks(TEN_TO_NOON, [cancelled])

        assert [b.kind for b in blocks] == [BlockKind.FREE]

    def test_unsorted_input(self, make_appointment):
        blocks = build_day_blocks(
            NINE_TO_FIVE,
            [make_appointment("14:00", "15:00"), make_appointment("09:00", "10:00")],
        )
        assert [b.start for b in blocks] == [540, 600, 840, 900]


class TestGenerateSlots:
    """Bookable start times for one staff member and day."""

    def test_booked_start_of_window(self, make_appointment):
        """10-12 window, 10:00-10:30 booked, 60 minutes: 10:30 and 11:00 only."""
        slots = generate_slots(MONDAY, TEN_TO_NOON, [make_appointment("10:00", "10:30")], 60)

        assert slots == [time(10, 30), time(11, 0)]
        assert time(10, 0) not in slots

    def test_latest_start_ends_at_closing(self):
        slots = generate_slots(MONDAY, TEN_TO_NOON, [], 60)

        assert slots == [time(10, 0), time(10, 30), time(11, 0)]

    def test_nothing_fits(self):
        assert generate_slots(MONDAY, TEN_TO_NOON, [], 180) == []

    def test_closed_day_has_no_slots(self):
        assert generate_slots(MONDAY, None, [], 30) == []

    def test_zero_duration_rejected(self):
        with pytest.raises(ValueError):
            generate_slots(MONDAY, TEN_TO_NOON, [], 0)

    def test_ticks_follow_free_block_start(self, make_appointment):
        """After a 45-minute booking the next starts are 09:45, 10:15, ..."""
        slots = generate_slots(
            MONDAY,
            TimeWindow(start=time(9), end=time(11)),
            [make_appointment("09:00", "09:45")],
            30,
        )
        assert slots == [time(9, 45), time(10, 15)]

    def test_other_dates_are_ignored(self, make_appointment):
        other_day = make_appointment("10:00", "12:00", day=date(2030, 1, 8))

        assert generate_slots(MONDAY, TEN_TO_NOON, [other_day], 60)[0] == time(10, 0)

    def test_every_slot_fits_and_overlaps_nothing(self, make_appointment):
        appointments = [
            make_appointment("09:30", "10:15"),
            make_appointment("12:00", "13:30"),
            make_appointment("16:00", "16:45"),
        ]
        duration = 75

        for start in generate_slots(MONDAY, NINE_TO_FIVE, appointments, duration):
            assert slot_fits(start, duration, NINE_TO_FIVE, appointments)

    def test_today_filtering_with_now(self):
        """Starts at or before now + 30 minutes are dropped."""
        now = datetime(2030, 1, 7, 10, 0)

        slots = generate_slots(MONDAY, TEN_TO_NOON, [], 30, now=now)

        assert slots == [time(11, 0), time(11, 30)]


class TestFilterPastSlots:
    """Today buffer rules."""

    def test_future_day_unchanged(self):
        slots = [time(9), time(9, 30)]
        now = datetime(2030, 1, 6, 23, 0)

        assert filter_past_slots(slots, MONDAY, now) == slots

    def test_past_day_has_nothing(self):
        now = datetime(2030, 1, 8, 8, 0)

        assert filter_past_slots([time(15)], MONDAY, now) == []

    def test_start_exactly_at_buffer_is_dropped(self):
        """Now 10:00, buffer 30: 10:30 is not strictly after the cut-off."""
        now = datetime(2030, 1, 7, 10, 0)

        result = filter_past_slots([time(10), time(10, 30), time(11)], MONDAY, now)

        assert result == [time(11)]

    def test_custom_buffer(self):
        now = datetime(2030, 1, 7, 10, 0)

        result = filter_past_slots([time(10, 0), time(10, 30)], MONDAY, now, buffer_minutes=0)

        assert result == [time(10, 30)]


class TestSlotFits:

    def test_outside_window(self):
        assert not slot_fits(time(11, 30), 60, TEN_TO_NOON, [])

    def test_overlap(self, make_appointment):
        assert not slot_fits(time(10), 60, TEN_TO_NOON, [make_appointment("10:30", "11:00")])

    def test_touching_is_not_overlap(self, make_appointment):
        assert slot_fits(time(10), 30, TEN_TO_NOON, [make_appointment("10:30", "11:00")])

    def test_closed(self):
        assert not slot_fits(time(10), 30, None, [])


class TestEligibleStaff:

    def test_only_capable_staff_listed(self, staff, haircut, coloring):
        """Marko cannot do coloring."""
        assert [m.name for m in eligible_staff(staff, [haircut])] == ["Ana", "Marko"]
        assert [m.name for m in eligible_staff(staff, [haircut, coloring])] == ["Ana"]

    def test_capability_from_service_side(self, staff, marko):
        """A service listing the staff member counts too."""
        from salon_booking.models import Service
        beard = Service(id="9", name="Beard", duration_minutes=20, staff_ids={marko.id})

        assert eligible_staff(staff, [beard]) == [marko]

    def test_no_services_means_everyone(self, staff):
        assert eligible_staff(staff, []) == staff
