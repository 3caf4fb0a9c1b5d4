"""Tests for the month availability probe."""
import asyncio
import threading
import time as time_module
from datetime import date, datetime, time

import pytest

from salon_booking.errors import BackendError, BookingValidationError
from salon_booking.models import CapacityColor, CapacityStatus, DayCapacity
from salon_booking.probe import AvailabilityProbe, month_dates

JANUARY = date(2030, 1, 1)


class RecordingSlotSource:
    """Slot source that records calls and peak concurrency."""

    def __init__(self, slots=(time(9), time(16, 30)), fail_on=(), delay=0.0):
        self.slots = list(slots)
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def get_slots(self, day, staff, services):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append((day, staff.id))
        try:
            if self.delay:
                time_module.sleep(self.delay)
            if day in self.fail_on:
                raise BackendError("backend unavailable")
            return list(self.slots)
        finally:
            with self._lock:
                self.active -= 1


def _full(day):
    return DayCapacity(
        date=day, total_slots=16, occupied_slots=16, free_slots=0,
        percentage=100, status=CapacityStatus.FULL, color=CapacityColor.RED,
    )


def test_month_dates():
    dates = month_dates(date(2030, 2, 14))

    assert dates[0] == date(2030, 2, 1)
    assert dates[-1] == date(2030, 2, 28)


class TestDatesToCheck:

    def test_skips_past_closed_and_staff_days(self, salon, marko, clock):
        """From Monday the 7th: Marko works Mon-Wed only."""
        probe = AvailabilityProbe(RecordingSlotSource(), salon, clock=clock)

        dates = probe.dates_to_check(JANUARY, marko)

        assert dates[0] == date(2030, 1, 7)
        assert all(day.weekday() < 3 for day in dates)
        assert len(dates) == 12

    def test_skips_full_days(self, salon, ana, clock):
        probe = AvailabilityProbe(RecordingSlotSource(), salon, clock=clock)
        full_day = date(2030, 1, 9)

        dates = probe.dates_to_check(JANUARY, ana, {full_day: _full(full_day)})

        assert full_day not in dates
        assert len(dates) == 18


class TestScan:
    """Batched scanning with progressive snapshots."""

    @pytest.mark.asyncio
    async def test_batches_of_five(self, salon, ana, haircut, clock):
        """19 weekdays from the 7th: batches of 5, 5, 5, 4."""
        source = RecordingSlotSource(delay=0.01)
        updates = []
        probe = AvailabilityProbe(source, salon, on_update=updates.append, clock=clock)

        result = await probe.scan(ana, [haircut], JANUARY)

        assert [u.processed for u in updates] == [0, 5, 10, 15, 19]
        assert updates[-1].done
        assert result.progress == 1.0
        assert len(result.dates_with_slots) == 19
        assert source.max_active <= 5
        assert len(source.calls) == 19

    @pytest.mark.asyncio
    async def test_failed_dates_stay_disabled(self, salon, ana, haircut, clock):
        broken = date(2030, 1, 8)
        source = RecordingSlotSource(fail_on={broken})
        probe = AvailabilityProbe(source, salon, clock=clock)

        result = await probe.scan(ana, [haircut], JANUARY)

        assert broken not in result.dates_with_slots
        assert len(result.dates_with_slots) == 18
        assert result.done

    @pytest.mark.asyncio
    async def test_today_respects_buffer(self, salon, ana, haircut):
        """At 16:10 no Monday slot is bookable any more (cut-off 16:40)."""
        late = datetime(2030, 1, 7, 16, 10)
        probe = AvailabilityProbe(RecordingSlotSource(), salon, clock=lambda: late)

        result = await probe.scan(ana, [haircut], JANUARY)

        assert date(2030, 1, 7) not in result.dates_with_slots
        assert date(2030, 1, 8) in result.dates_with_slots

    @pytest.mark.asyncio
    async def test_no_dates_left(self, salon, ana, haircut):
        """Scanning a past month finishes immediately."""
        source = RecordingSlotSource()
        probe = AvailabilityProbe(source, salon, clock=lambda: datetime(2030, 3, 1, 9))

        result = await probe.scan(ana, [haircut], JANUARY)

        assert result.done
        assert result.total == 0
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_zero_duration_selection_rejected(self, salon, ana, wash, clock):
        source = RecordingSlotSource()
        probe = AvailabilityProbe(source, salon, clock=clock)

        with pytest.raises(BookingValidationError):
            await probe.scan(ana, [wash], JANUARY)
        assert source.calls == []


class TestSupersede:
    """A newer selection always wins."""

    @pytest.mark.asyncio
    async def test_staff_switch_discards_previous_scan(self, salon, ana, marko, haircut, clock):
        source = RecordingSlotSource(delay=0.01)
        updates = []
        probe = AvailabilityProbe(source, salon, on_update=updates.append, clock=clock)

        first = probe.start(ana, [haircut], JANUARY)
        await asyncio.sleep(0)
        second = probe.start(marko, [haircut], JANUARY)
        result = await second
        await asyncio.gather(first, return_exceptions=True)

        assert first.cancelled()
        assert probe.snapshot == result
        assert result.generation == probe.generation
        # Marko does not work Thursday or Friday
        assert result.dates_with_slots
        assert all(day.weekday() < 3 for day in result.dates_with_slots)
        generations = [u.generation for u in updates]
        assert generations == sorted(generations)

    def test_start_validates_before_scheduling(self, salon, marko, coloring, clock):
        """Marko cannot do coloring; no task is created."""
        probe = AvailabilityProbe(RecordingSlotSource(), salon, clock=clock)

        with pytest.raises(BookingValidationError):
            probe.start(marko, [coloring], JANUARY)
        assert probe.generation == 0

    @pytest.mark.asyncio
    async def test_cancel_invalidates_running_scan(self, salon, ana, haircut, clock):
        updates = []
        probe = AvailabilityProbe(
            RecordingSlotSource(delay=0.01), salon, on_update=updates.append, clock=clock
        )

        task = probe.start(ana, [haircut], JANUARY)
        await asyncio.sleep(0)
        probe.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert probe.snapshot.dates_with_slots == frozenset()
        assert all(u.generation < probe.generation for u in updates)
