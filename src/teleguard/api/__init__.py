"""API - HTTP surface over the threat pipeline.

Endpoints:
    POST  /events, /events/batch, /subjects/{subject_id}/behavior
    GET   /threats, /threats/{threat_id}
    PATCH /threats/{threat_id}/status
    GET   /actions    POST /actions
    GET   /anomalies/statistical
    GET   /system-config    PATCH /system-config/{key}
"""

from teleguard.api.gateway import app
from teleguard.api.schemas import (
    ErrorResponse,
    EventResponse,
    ManualActionRequest,
    StatusUpdateRequest,
)
from teleguard.api.service import TeleGuardService

__all__ = [
    "app",
    "ErrorResponse",
    "EventResponse",
    "ManualActionRequest",
    "StatusUpdateRequest",
    "TeleGuardService",
]
