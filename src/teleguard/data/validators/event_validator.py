"""Event validation for TeleGuard.

Turns raw payloads into typed Events before anything is scored.
"""

from typing import Any, Dict, List, Union

from pydantic import BaseModel, ValidationError

from teleguard.common.exceptions import InvalidEventError
from teleguard.data.schemas import EVENT_ADAPTER, BehaviorSample, CallRecord, MessageRecord
from teleguard.data.schemas.events import Event

EVENT_TYPES = (CallRecord, MessageRecord, BehaviorSample)


class ValidationResult:
    """Result of validating a batch of payloads."""

    def __init__(self):
        self.valid: bool = True
        self.errors: List[Dict[str, Any]] = []
        self.events: List[Event] = []

    @property
    def validated_count(self) -> int:
        return len(self.events)

    def add_error(self, index: int, error: str):
        """Add validation error."""
        self.valid = False
        self.errors.append({"index": index, "error": error})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "valid": self.valid,
            "validated_count": self.validated_count,
            "error_count": len(self.errors),
            "errors": self.errors,
        }


def _summarize(error: ValidationError) -> List[Dict[str, Any]]:
    # Drop "input" so message bodies never reach logs or API responses
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in error.errors()
    ]


def validate_event(payload: Union[Event, Dict[str, Any]]) -> Event:
    """Validate a single event.

    Args:
        payload: An Event model or a raw dictionary with a `record_type`

    Returns:
        The typed Event

    Raises:
        InvalidEventError: If required fields are missing or malformed
    """
    if isinstance(payload, EVENT_TYPES):
        return payload
    if isinstance(payload, BaseModel):
        raise InvalidEventError(
            f"Unsupported event model {type(payload).__name__}",
            details={"type": type(payload).__name__},
        )
    if not isinstance(payload, dict):
        raise InvalidEventError(
            f"Expected event object, got {type(payload).__name__}",
            details={"type": type(payload).__name__},
        )
    if "record_type" not in payload:
        raise InvalidEventError(
            "Event is missing record_type",
            details={"errors": [{"loc": ["record_type"], "msg": "Field required", "type": "missing"}]},
        )

    try:
        return EVENT_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise InvalidEventError(
            f"Invalid {payload.get('record_type')} event",
            details={"errors": _summarize(e)},
        ) from e


def validate_events(payloads: List[Union[Event, Dict[str, Any]]]) -> ValidationResult:
    """Validate a list of payloads, collecting errors instead of raising."""
    result = ValidationResult()
    for i, payload in enumerate(payloads):
        try:
            result.events.append(validate_event(payload))
        except InvalidEventError as e:
            result.add_error(i, e.message)
    return result
