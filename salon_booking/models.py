"""Domain models for the salon booking engine.

Pattern: pydantic v2 models with lenient input parsing (ids may arrive as
numbers, dates as DD.MM.YYYY or ISO strings) and strict domain invariants.
"""
import datetime as dt
import re
from enum import Enum
from typing import Annotated, Dict, List, Optional, Set, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator


WEEKDAYS = [
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
]


def weekday_name(day: dt.date) -> str:
    """Lowercase weekday name used as key in working-hours records."""
    return WEEKDAYS[day.weekday()]


def parse_date(value: Union[dt.date, str, None]) -> Optional[dt.date]:
    """
    Parse a date given as date, DD.MM.YYYY or YYYY-MM-DD.

    Returns:
        Parsed date, or None for empty input

    Raises:
        ValueError: If the string matches neither format
    """
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    if "." in text:
        return dt.datetime.strptime(text, "%d.%m.%Y").date()
    return dt.datetime.strptime(text[:10], "%Y-%m-%d").date()


def minutes_of_day(value: dt.time) -> int:
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> dt.time:
    """Convert minutes since midnight to a time (must stay within the day)."""
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return dt.time(minutes // 60, minutes % 60)


FlexibleDate = Annotated[dt.date, BeforeValidator(parse_date)]


class _Model(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that count towards day capacity
OCCUPYING_STATUSES = frozenset({
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
    AppointmentStatus.COMPLETED,
})


class BreakType(str, Enum):
    SPECIFIC_DATE = "specific_date"
    DATE_RANGE = "date_range"


class CapacityStatus(str, Enum):
    FULL = "full"
    BUSY = "busy"
    AVAILABLE = "available"
    EMPTY = "empty"


class CapacityColor(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    GRAY = "gray"


class TimeWindow(BaseModel):
    """Open interval [start, end) of a working day."""
    model_config = ConfigDict(frozen=True)

    start: dt.time
    end: dt.time

    @property
    def start_minutes(self) -> int:
        return minutes_of_day(self.start)

    @property
    def end_minutes(self) -> int:
        return minutes_of_day(self.end)

    @property
    def minutes(self) -> int:
        return max(0, self.end_minutes - self.start_minutes)


class SalonDayHours(_Model):
    """Salon opening hours for one weekday."""
    open: Optional[dt.time] = None
    close: Optional[dt.time] = None
    is_open: bool = False


class StaffDayHours(_Model):
    """Staff working hours for one weekday."""
    start: Optional[dt.time] = None
    end: Optional[dt.time] = None
    is_working: bool = False


class Vacation(_Model):
    """Salon-wide closure over an inclusive date range."""
    start_date: FlexibleDate
    end_date: FlexibleDate
    is_active: bool = True
    title: Optional[str] = None

    def covers(self, day: dt.date) -> bool:
        return self.start_date <= day <= self.end_date


class Break(_Model):
    """Closure on a specific date or over an inclusive date range."""
    type: BreakType
    date: Optional[FlexibleDate] = None
    start_date: Optional[FlexibleDate] = None
    end_date: Optional[FlexibleDate] = None
    is_active: bool = True
    title: Optional[str] = None

    def covers(self, day: dt.date) -> bool:
        if self.type == BreakType.SPECIFIC_DATE:
            return self.date is not None and self.date == day
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= day <= self.end_date


class Service(_Model):
    """Bookable service. Zero duration marks an add-on."""
    id: str
    name: str = ""
    duration_minutes: int = Field(..., ge=0, le=24 * 60)
    price: float = Field(default=0, ge=0)
    discount_price: Optional[float] = Field(default=None, ge=0)
    staff_ids: Set[str] = Field(default_factory=set)

    @property
    def is_addon(self) -> bool:
        return self.duration_minutes == 0

    @property
    def effective_price(self) -> float:
        return self.discount_price if self.discount_price else self.price


class Staff(_Model):
    """Staff member with weekly working hours and capabilities."""
    id: str
    name: str = ""
    working_hours: Dict[str, StaffDayHours] = Field(default_factory=dict)
    service_ids: Set[str] = Field(default_factory=set)

    def can_perform(self, service: Service) -> bool:
        """Capability holds when either side of the relation lists it."""
        return service.id in self.service_ids or self.id in service.staff_ids


class Salon(_Model):
    """Salon with weekly opening hours and closure exceptions."""
    id: str
    name: str = ""
    working_hours: Dict[str, SalonDayHours] = Field(default_factory=dict)
    vacations: List[Vacation] = Field(default_factory=list)
    breaks: List[Break] = Field(default_factory=list)


class Appointment(_Model):
    """Existing booking of one staff member."""
    id: str
    date: FlexibleDate
    start_time: dt.time
    end_time: dt.time
    staff_id: str
    service_id: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def start_minutes(self) -> int:
        return minutes_of_day(self.start_time)

    @property
    def end_minutes(self) -> int:
        return minutes_of_day(self.end_time)

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED


class DayCapacity(_Model):
    """Derived occupancy of one day. Never persisted by the engine."""
    date: Optional[FlexibleDate] = None
    total_slots: int
    occupied_slots: int
    free_slots: int
    percentage: int
    status: CapacityStatus
    color: CapacityColor


NAME_PATTERN = re.compile(r"^[^\W\d_]+(?:[^\W\d_]|\s)*$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-+()]")


class GuestContact(BaseModel):
    """Contact details collected from an unauthenticated client."""
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        if len(value) < 3:
            raise ValueError("Name must have at least 3 characters")
        if not NAME_PATTERN.match(value):
            raise ValueError("Name may only contain letters")
        return value

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Phone number is required")
        digits = PHONE_STRIP_PATTERN.sub("", value)
        if not (digits.isdigit() and 8 <= len(digits) <= 15):
            raise ValueError("Phone number must have 8-15 digits")
        return value

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Email address is not valid")
        return value


class BookingDraft(BaseModel):
    """
    Booking under construction in the wizard.

    service_slots keeps unfilled entries as None so the UI can render an
    empty selector; only filled entries count as selected services.
    """
    service_slots: List[Optional[Service]] = Field(default_factory=lambda: [None])
    staff_id: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    notes: str = ""
    contact: Optional[GuestContact] = None

    @property
    def services(self) -> List[Service]:
        return [s for s in self.service_slots if s is not None]

    @property
    def total_duration(self) -> int:
        return sum(s.duration_minutes for s in self.services)

    @property
    def total_price(self) -> float:
        return sum(s.effective_price for s in self.services)
