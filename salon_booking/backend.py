"""Client for the external availability/booking backend.

Endpoints:
- POST /public/available-slots-multi   -> {"slots": ["HH:MM", ...]}
- GET  /public/salons/{id}/capacity    -> {"capacity": [{date, ...}, ...]}
- POST /appointments                   -> {"appointment": {...}} (authenticated)
- POST /public/book-guest              -> {"appointment": {...}} (guest)

Failures are classified into BookingConflictError (slot taken),
BackendValidationError (rejected payload) and BackendError (anything else).
"""
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Sequence

import requests

from salon_booking import config
from salon_booking.capacity import capacity_status
from salon_booking.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from salon_booking.errors import BackendError, BackendValidationError, BookingConflictError
from salon_booking.http_client import create_http_session
from salon_booking.logging_config import get_logger
from salon_booking.models import DayCapacity, Service

logger = get_logger(__name__)

# Messages the backend uses when a slot was taken in the meantime
CONFLICT_MARKERS = (
    "upravo zauzet",
    "nije dostupan",
    "double booking",
    "no longer available",
    "already booked",
)


def format_wire_date(day: date) -> str:
    return day.strftime(config.WIRE_DATE_FORMAT)


def format_wire_time(value: time) -> str:
    return value.strftime(config.WIRE_TIME_FORMAT)


def parse_wire_time(value: str) -> time:
    return datetime.strptime(value.strip()[:5], config.WIRE_TIME_FORMAT).time()


def _error_message(response: Optional[requests.Response]) -> str:
    if response is None:
        return "Booking backend request failed"
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data)
    return str(data)


def classify_http_error(exc: requests.exceptions.HTTPError) -> BackendError:
    """
    Map an HTTP error response to the engine's error hierarchy.

    Args:
        exc: HTTPError raised by the session

    Returns:
        BookingConflictError, BackendValidationError or BackendError
    """
    response = exc.response
    status = response.status_code if response is not None else None
    message = _error_message(response)
    lowered = message.lower()

    if status == 409 or any(marker in lowered for marker in CONFLICT_MARKERS):
        return BookingConflictError(message, status_code=status)
    if status in (400, 422):
        return BackendValidationError(message, status_code=status)
    return BackendError(message, status_code=status)


def capacity_from_wire(item: Dict[str, Any]) -> DayCapacity:
    """Build DayCapacity from a backend item (snake_case or camelCase keys)."""
    def pick(snake: str, camel: str, default: int = 0) -> int:
        value = item.get(snake, item.get(camel, default))
        return int(value) if value is not None else default

    total = pick("total_slots", "totalSlots")
    occupied = pick("occupied_slots", "occupiedSlots")
    free = pick("free_slots", "freeSlots", max(0, total - occupied))
    if item.get("percentage") is not None:
        percentage = int(float(item["percentage"]) + 0.5)
    else:
        percentage = (occupied * 200 + total) // (2 * total) if total > 0 else 0
    status, color = capacity_status(percentage)

    return DayCapacity(
        date=item.get("date"),
        total_slots=total,
        occupied_slots=occupied,
        free_slots=free,
        percentage=percentage,
        status=status,
        color=color,
    )


class BookingBackend:
    """HTTP client for the booking backend, protected by a circuit breaker."""

    def __init__(
        self,
        base_url: str = config.BACKEND_BASE_URL,
        session: Optional[requests.Session] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        auth_token: Optional[str] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or create_http_session()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=config.CIRCUIT_FAILURE_THRESHOLD,
            timeout=config.CIRCUIT_TIMEOUT_SECONDS,
            ignored_exceptions=(BookingConflictError, BackendValidationError),
        )
        self.auth_token = auth_token

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        if self.auth_token:
            kwargs.setdefault("headers", {})["Authorization"] = f"Bearer {self.auth_token}"

        def send():
            try:
                if method == "GET":
                    return self.session.get(url, **kwargs)
                elif method == "POST":
                    return self.session.post(url, **kwargs)
                raise ValueError(f"Unsupported HTTP method: {method}")
            except requests.exceptions.HTTPError as exc:
                raise classify_http_error(exc) from exc

        try:
            return self.circuit_breaker.call(send)
        except CircuitBreakerOpen as exc:
            raise BackendError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("backend_unreachable", path=path, error=str(exc))
            raise BackendError(f"Could not connect to booking backend: {exc}") from exc

    def get_slots(
        self,
        salon_id: str,
        day: date,
        staff_id: str,
        services: Sequence[Service]
    ) -> List[time]:
        """
        Ask the backend for free start times of a multi-service booking.

        Args:
            salon_id: Salon ID
            day: Requested date
            staff_id: Staff member performing all services
            services: Selected services in booking order

        Returns:
            Start times as returned by the backend (no today filtering)
        """
        payload = {
            "salon_id": salon_id,
            "date": format_wire_date(day),
            "services": [
                {
                    "serviceId": service.id,
                    "staffId": staff_id,
                    "duration": service.duration_minutes,
                }
                for service in services
            ],
        }
        response = self._request("POST", "/public/available-slots-multi", json=payload)
        slots = response.json().get("slots") or []
        return sorted(parse_wire_time(slot) for slot in slots)

    def get_month_capacity(self, salon_id: str, month: date) -> Dict[date, DayCapacity]:
        """
        Fetch per-day capacity for the month containing `month`.

        Returns:
            Mapping of date to DayCapacity
        """
        response = self._request(
            "GET",
            f"/public/salons/{salon_id}/capacity",
            params={"month": month.strftime("%Y-%m")},
        )
        items = response.json().get("capacity") or []
        capacity = {}
        for item in items:
            day_capacity = capacity_from_wire(item)
            if day_capacity.date is not None:
                capacity[day_capacity.date] = day_capacity
        return capacity

    def create_appointment(self, payload: Dict[str, Any], guest: bool = False) -> Dict[str, Any]:
        """
        Create one appointment.

        Args:
            payload: Request body (see salon_booking.submission)
            guest: Use the unauthenticated guest endpoint

        Returns:
            Created appointment as returned by the backend

        Raises:
            BookingConflictError: Slot was taken meanwhile
            BackendValidationError: Backend rejected the payload
            BackendError: Any other failure
        """
        path = "/public/book-guest" if guest else "/appointments"
        response = self._request("POST", path, json=payload)
        data = response.json()
        appointment = data.get("appointment", data) if isinstance(data, dict) else data
        logger.info(
            "appointment_created",
            appointment_id=appointment.get("id") if isinstance(appointment, dict) else None,
            guest=guest
        )
        return appointment
