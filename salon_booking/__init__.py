"""Salon availability and booking engine."""
from salon_booking.probe import AvailabilityProbe, ProbeSnapshot
from salon_booking.submission import BookingSubmitter, SubmissionStrategy
from salon_booking.wizard import BookingWizard, FailureKind, WizardSnapshot, WizardStep

__all__ = [
    "AvailabilityProbe",
    "ProbeSnapshot",
    "BookingSubmitter",
    "SubmissionStrategy",
    "BookingWizard",
    "FailureKind",
    "WizardSnapshot",
    "WizardStep",
]
