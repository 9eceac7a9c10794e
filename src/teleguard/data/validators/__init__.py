"""Validators for incoming data."""

from teleguard.data.validators.event_validator import (
    ValidationResult,
    validate_event,
    validate_events,
)

__all__ = ["ValidationResult", "validate_event", "validate_events"]
