"""Month availability probe.

Finds which dates of a month have at least one bookable slot for a
staff/service selection.

Pattern: fixed-size concurrent batches (asyncio.gather over worker-thread
slot queries), strictly sequential between batches, with a snapshot
published after every batch so dates become selectable progressively.

Every (staff, services, month) selection gets a new generation number.
Starting a new scan cancels the previous task, and any snapshot whose
generation is no longer current is discarded at publish time.
"""
import asyncio
import calendar
from datetime import date, datetime
from typing import Callable, FrozenSet, List, Mapping, NamedTuple, Optional, Sequence

from salon_booking import config
from salon_booking.availability import SlotSource
from salon_booking.capacity import is_fully_booked
from salon_booking.errors import BookingValidationError
from salon_booking.exclusions import check_date
from salon_booking.logging_config import get_logger
from salon_booking.models import DayCapacity, Salon, Service, Staff
from salon_booking.slots import filter_past_slots, total_duration

logger = get_logger(__name__)


class ProbeSnapshot(NamedTuple):
    """Progress of one scan as seen by the UI."""
    generation: int
    dates_with_slots: FrozenSet[date]
    processed: int
    total: int
    done: bool

    @property
    def progress(self) -> float:
        if self.total == 0:
            return 1.0 if self.done else 0.0
        return self.processed / self.total


def month_dates(month: date) -> List[date]:
    """All dates of the month containing `month`."""
    _, last_day = calendar.monthrange(month.year, month.month)
    return [date(month.year, month.month, day) for day in range(1, last_day + 1)]


class AvailabilityProbe:
    """Bounded-concurrency scan of a month for dates with free slots."""

    def __init__(
        self,
        slot_source: SlotSource,
        salon: Salon,
        on_update: Optional[Callable[[ProbeSnapshot], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
        batch_size: int = config.PROBE_BATCH_SIZE
    ):
        self.slot_source = slot_source
        self.salon = salon
        self.on_update = on_update
        self._clock = clock
        self.batch_size = batch_size
        self.generation = 0
        self.snapshot = ProbeSnapshot(0, frozenset(), 0, 0, True)
        self._task: Optional[asyncio.Task] = None

    def dates_to_check(
        self,
        month: date,
        staff: Staff,
        capacity: Optional[Mapping[date, DayCapacity]] = None
    ) -> List[date]:
        """
        Dates worth querying: not in the past, not excluded, not full.

        Args:
            month: Any date inside the target month
            staff: Selected staff member
            capacity: Optional month capacity; full days are skipped

        Returns:
            Ascending list of dates
        """
        today = self._clock().date()
        capacity = capacity or {}
        return [
            day for day in month_dates(month)
            if day >= today
            and check_date(day, self.salon, staff).available
            and not is_fully_booked(capacity.get(day))
        ]

    async def _has_slots(
        self,
        day: date,
        staff: Staff,
        services: Sequence[Service],
        now: datetime
    ) -> bool:
        try:
            slots = await asyncio.to_thread(self.slot_source.get_slots, day, staff, services)
        except Exception as exc:
            # Fail closed: an unreadable date stays disabled
            logger.warning(
                "probe_date_failed",
                date=day.isoformat(),
                staff_id=staff.id,
                error=str(exc)
            )
            return False
        return bool(filter_past_slots(slots, day, now))

    def _publish(self, snapshot: ProbeSnapshot) -> bool:
        if snapshot.generation != self.generation:
            logger.debug(
                "probe_stale_snapshot_discarded",
                generation=snapshot.generation,
                current=self.generation
            )
            return False
        self.snapshot = snapshot
        if self.on_update is not None:
            self.on_update(snapshot)
        return True

    @staticmethod
    def _validate_selection(staff: Staff, services: Sequence[Service]):
        if not services or total_duration(services) <= 0:
            raise BookingValidationError("Select at least one service with a duration")
        if not all(staff.can_perform(service) for service in services):
            raise BookingValidationError("Selected staff cannot perform all services", field="staff")

    def _next_generation(self) -> int:
        self.generation += 1
        self.snapshot = ProbeSnapshot(self.generation, frozenset(), 0, 0, False)
        return self.generation

    async def scan(
        self,
        staff: Staff,
        services: Sequence[Service],
        month: date,
        capacity: Optional[Mapping[date, DayCapacity]] = None,
        generation: Optional[int] = None
    ) -> ProbeSnapshot:
        """
        Scan a month in batches and publish progress after each batch.

        Args:
            staff: Selected staff member
            services: Selected services in booking order
            month: Any date inside the target month
            capacity: Optional month capacity used to skip full days
            generation: Generation token (a new one is taken when omitted)

        Returns:
            Final snapshot of this scan (may be stale if superseded)

        Raises:
            BookingValidationError: Empty/zero-duration selection or
                staff incapable of a selected service
        """
        self._validate_selection(staff, services)
        if generation is None:
            generation = self._next_generation()

        now = self._clock()
        dates = self.dates_to_check(month, staff, capacity)
        total = len(dates)
        found = set()
        processed = 0

        logger.info(
            "probe_started",
            generation=generation,
            staff_id=staff.id,
            month=month.strftime("%Y-%m"),
            dates=total
        )

        snapshot = ProbeSnapshot(generation, frozenset(), 0, total, total == 0)
        if not self._publish(snapshot) or total == 0:
            return snapshot

        for start in range(0, total, self.batch_size):
            batch = dates[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._has_slots(day, staff, services, now) for day in batch)
            )
            found.update(day for day, has_slots in zip(batch, results) if has_slots)
            processed += len(batch)

            snapshot = ProbeSnapshot(
                generation, frozenset(found), processed, total, processed == total
            )
            if not self._publish(snapshot):
                break

        logger.info(
            "probe_finished",
            generation=generation,
            available_dates=len(found),
            stale=snapshot.generation != self.generation
        )
        return snapshot

    def start(
        self,
        staff: Staff,
        services: Sequence[Service],
        month: date,
        capacity: Optional[Mapping[date, DayCapacity]] = None
    ) -> asyncio.Task:
        """
        Supersede any running scan and start a new one.

        Must be called from a running event loop.

        Returns:
            The asyncio task running the new scan
        """
        self._validate_selection(staff, services)
        self.cancel()
        generation = self.generation
        self._task = asyncio.create_task(
            self.scan(staff, services, month, capacity, generation=generation)
        )
        return self._task

    def cancel(self):
        """Cancel the running scan and invalidate its late results."""
        self._next_generation()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
