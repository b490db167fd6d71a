"""Database models."""

from consultorio.models.appointment_history import (
    appointment_cancellations,
    appointment_reschedules,
    appointment_status_events,
)
from consultorio.models.appointments import appointments
from consultorio.models.audit import APPEND_ONLY_TABLES, audit_log
from consultorio.models.doctors import doctors
from consultorio.models.metadata import metadata
from consultorio.models.patients import patients
from consultorio.models.schedule import availability_templates, time_blocks, time_slots
from consultorio.models.specialties import doctor_specialties, specialties

__all__ = [
    "APPEND_ONLY_TABLES",
    "appointment_cancellations",
    "appointment_reschedules",
    "appointment_status_events",
    "appointments",
    "audit_log",
    "availability_templates",
    "doctor_specialties",
    "doctors",
    "metadata",
    "patients",
    "specialties",
    "time_blocks",
    "time_slots",
]
