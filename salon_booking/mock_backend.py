"""Mock booking backend.

Flask server implementing the booking backend endpoints on top of the
engine, with in-memory appointments:
- POST /public/available-slots-multi
- GET  /public/salons/<salon_id>/capacity?month=YYYY-MM
- POST /appointments          (requires a bearer token)
- POST /public/book-guest
- GET  /health

Run with: python -m salon_booking.mock_backend
"""
import calendar
import itertools
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from flask import Flask, jsonify, request
from pydantic import ValidationError

from salon_booking import config
from salon_booking.availability import AppointmentBook
from salon_booking.backend import format_wire_date, format_wire_time, parse_wire_time
from salon_booking.capacity import calculate_multi_day_capacity
from salon_booking.exclusions import check_date
from salon_booking.logging_config import get_logger, setup_structured_logging
from salon_booking.models import (
    Appointment,
    AppointmentStatus,
    GuestContact,
    Salon,
    SalonDayHours,
    Service,
    Staff,
    StaffDayHours,
    parse_date,
    time_from_minutes,
)
from salon_booking.slots import generate_slots
from salon_booking.working_hours import window_for_date

logger = get_logger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot is no longer available"


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def create_app(
    salon: Salon,
    staff: Sequence[Staff],
    services: Sequence[Service],
    book: Optional[AppointmentBook] = None,
    clock: Callable[[], datetime] = datetime.now
) -> Flask:
    """
    Build the mock backend for one salon.

    Args:
        salon: The salon served
        staff: Its staff members
        services: Its services
        book: Appointment store (a fresh empty one by default)
        clock: Current time, used to hide past starts

    Returns:
        Flask app; the store is available as app.config["BOOK"]
    """
    app = Flask(__name__)
    book = book if book is not None else AppointmentBook()
    staff_by_id: Dict[str, Staff] = {member.id: member for member in staff}
    services_by_id: Dict[str, Service] = {service.id: service for service in services}
    counter = itertools.count(1000)
    app.config["BOOK"] = book

    def resolve_services(ids: Iterable) -> List[Service]:
        resolved = []
        for service_id in ids:
            service = services_by_id.get(str(service_id))
            if service is None:
                raise KeyError(f"Service '{service_id}' not found")
            resolved.append(service)
        return resolved

    def book_services(data: dict, contact: Optional[GuestContact]):
        required_fields = ["staff_id", "service_id", "date", "time"]
        for field in required_fields:
            if not data.get(field):
                return _error(f"Missing required field: {field}", 400)

        member = staff_by_id.get(str(data["staff_id"]))
        if member is None:
            return _error(f"Staff '{data['staff_id']}' not found", 404)
        try:
            selected = resolve_services(
                [data["service_id"], *(data.get("additional_services") or [])]
            )
        except KeyError as exc:
            return _error(str(exc.args[0]), 404)

        try:
            day = parse_date(data["date"])
            start = parse_wire_time(data["time"])
        except ValueError:
            return _error("Invalid date or time format. Use DD.MM.YYYY and HH:MM", 400)

        if not all(member.can_perform(service) for service in selected):
            return _error("Staff member cannot perform the selected services", 422)
        duration = sum(service.duration_minutes for service in selected)
        if duration <= 0:
            return _error("Total service duration must be greater than zero", 422)

        now = clock()
        if datetime.combine(day, start) <= now:
            return _error("Appointment time must be in the future", 400)

        window = None
        if check_date(day, salon, member).available:
            window = window_for_date(day, staff=member)

        start_minutes = start.hour * 60 + start.minute
        appointment = None
        if window is not None and start_minutes + duration <= window.end_minutes:
            appointment = Appointment(
                id=str(next(counter)),
                date=day,
                start_time=start,
                end_time=time_from_minutes(start_minutes + duration),
                staff_id=member.id,
                service_id=selected[0].id,
                status=AppointmentStatus.CONFIRMED,
            )
        if appointment is None or not book.add_if_free(appointment, window):
            logger.info("mock_slot_conflict", staff_id=member.id, date=day.isoformat(), time=data["time"])
            return jsonify({"success": False, "error": SLOT_TAKEN_MESSAGE}), 409

        logger.info("mock_appointment_created", appointment_id=appointment.id, guest=contact is not None)

        body = {
            "id": appointment.id,
            "salon_id": salon.id,
            "staff_id": member.id,
            "service_id": selected[0].id,
            "additional_services": [service.id for service in selected[1:]],
            "date": format_wire_date(day),
            "start_time": format_wire_time(appointment.start_time),
            "end_time": format_wire_time(appointment.end_time),
            "status": appointment.status.value,
            "notes": data.get("notes") or "",
        }
        if contact is not None:
            body["client"] = contact.model_dump()
        return jsonify({"success": True, "appointment": body}), 201

    @app.route("/public/available-slots-multi", methods=["POST"])
    def available_slots_multi():
        """POST /public/available-slots-multi - Free starts for a multi-service booking.

        Expected JSON body:
        {
            "salon_id": "1",
            "date": "15.01.2025",
            "services": [{"serviceId": "10", "staffId": "3", "duration": 45}]
        }
        """
        data = request.get_json(silent=True) or {}
        items = data.get("services") or []
        if not items:
            return _error("At least one service is required", 400)

        member = staff_by_id.get(str(items[0].get("staffId")))
        if member is None:
            return _error("Staff member not found", 404)
        try:
            day = parse_date(data.get("date"))
        except ValueError:
            return _error("Invalid date format. Use DD.MM.YYYY", 400)
        if day is None:
            return _error("Missing required field: date", 400)

        duration = sum(int(item.get("duration") or 0) for item in items)
        if duration <= 0:
            return _error("Total service duration must be greater than zero", 422)

        slots = []
        if check_date(day, salon, member).available:
            slots = generate_slots(
                day,
                window_for_date(day, staff=member),
                book.for_staff(member.id, day),
                duration,
                now=clock(),
            )
        return jsonify({"slots": [format_wire_time(slot) for slot in slots]})

    @app.route("/public/salons/<salon_id>/capacity", methods=["GET"])
    def month_capacity(salon_id):
        """GET /public/salons/<id>/capacity?month=YYYY-MM - Per-day occupancy."""
        if salon_id != salon.id:
            return _error(f"Salon '{salon_id}' not found", 404)
        try:
            month = datetime.strptime(request.args.get("month", ""), "%Y-%m").date()
        except ValueError:
            return _error("Invalid month format. Use YYYY-MM", 400)

        _, last_day = calendar.monthrange(month.year, month.month)
        dates = [date(month.year, month.month, day) for day in range(1, last_day + 1)]
        windows = {day: window_for_date(day, salon=salon) for day in dates}
        capacity = calculate_multi_day_capacity(book.all(), dates, windows)

        return jsonify({
            "capacity": [
                {
                    "date": day.date.isoformat(),
                    "total_slots": day.total_slots,
                    "occupied_slots": day.occupied_slots,
                    "free_slots": day.free_slots,
                    "percentage": day.percentage,
                    "status": day.status.value,
                    "color": day.color.value,
                }
                for day in capacity
            ]
        })

    @app.route("/appointments", methods=["POST"])
    def create_appointment():
        """POST /appointments - Book as an authenticated client."""
        if not request.headers.get("Authorization", "").startswith("Bearer "):
            return _error("Authentication required", 401)
        data = request.get_json(silent=True)
        if not data:
            return _error("Request body is required", 400)
        return book_services(data, contact=None)

    @app.route("/public/book-guest", methods=["POST"])
    def book_guest():
        """POST /public/book-guest - Book without an account."""
        data = request.get_json(silent=True)
        if not data:
            return _error("Request body is required", 400)
        try:
            contact = GuestContact(
                name=data.get("guest_name") or "",
                phone=data.get("guest_phone") or "",
                email=data.get("guest_email"),
                address=data.get("guest_address"),
            )
        except ValidationError as exc:
            return _error(exc.errors()[0]["msg"].removeprefix("Value error, "), 422)
        return book_services(data, contact=contact)

    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "healthy", "appointments": len(book.all())})

    return app


def demo_salon() -> Salon:
    weekdays = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    return Salon(
        id="1",
        name="Demo Salon",
        working_hours={
            day: SalonDayHours(open="09:00", close="17:00", is_open=True) for day in weekdays
        },
    )


def demo_staff() -> List[Staff]:
    weekdays = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    return [
        Staff(
            id="1",
            name="Ana",
            working_hours={
                day: StaffDayHours(start="09:00", end="17:00", is_working=True) for day in weekdays
            },
            service_ids={"1", "2", "3"},
        ),
        Staff(
            id="2",
            name="Marko",
            working_hours={
                day: StaffDayHours(start="12:00", end="20:00", is_working=True) for day in weekdays[:3]
            },
            service_ids={"1", "3"},
        ),
    ]


def demo_services() -> List[Service]:
    return [
        Service(id="1", name="Haircut", duration_minutes=45, price=25),
        Service(id="2", name="Coloring", duration_minutes=90, price=60, discount_price=50),
        Service(id="3", name="Hair wash", duration_minutes=0, price=5),
    ]


if __name__ == "__main__":
    setup_structured_logging()
    app = create_app(demo_salon(), demo_staff(), demo_services())
    logger.info("mock_backend_starting", port=config.MOCK_BACKEND_PORT)
    app.run(debug=True, port=config.MOCK_BACKEND_PORT, host="0.0.0.0")
