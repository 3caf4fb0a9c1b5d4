"""Configuration for the salon booking engine.

Scheduling rules are centralized here - override them through environment
variables (or a .env file) without touching code.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# Backend booking service
BACKEND_BASE_URL = os.getenv("BOOKING_BACKEND_URL", "http://localhost:8000/api")
BACKEND_TIMEOUT_SECONDS = int(os.getenv("BOOKING_BACKEND_TIMEOUT", "15"))
BACKEND_MAX_RETRIES = int(os.getenv("BOOKING_BACKEND_MAX_RETRIES", "3"))
CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_TIMEOUT_SECONDS = 60

# Wire formats used by the backend
WIRE_DATE_FORMAT = "%d.%m.%Y"
WIRE_TIME_FORMAT = "%H:%M"

# Slot generation
SLOT_TICK_MINUTES = int(os.getenv("SLOT_TICK_MINUTES", "30"))
TODAY_BUFFER_MINUTES = int(os.getenv("TODAY_BUFFER_MINUTES", "30"))

# Capacity aggregation
CAPACITY_SLOT_MINUTES = 30
DEFAULT_TOTAL_SLOTS = 16  # 8 hours when working hours cannot be resolved
BUSY_THRESHOLD_PERCENT = 70
FULL_THRESHOLD_PERCENT = 100

# Month availability scan
PROBE_BATCH_SIZE = 5

# Submission: "combined" (one request) or "chained" (one per service)
SUBMISSION_STRATEGY = os.getenv("BOOKING_SUBMISSION_STRATEGY", "chained")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")  # "json" or "console"

# Reference backend
MOCK_BACKEND_PORT = int(os.getenv("MOCK_BACKEND_PORT", "8000"))
