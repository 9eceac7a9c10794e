"""Data schemas - canonical Pydantic definitions."""

from teleguard.data.schemas.events import (
    EVENT_ADAPTER,
    ActivitySnapshot,
    BehaviorSample,
    CallRecord,
    Event,
    MessageRecord,
)
from teleguard.data.schemas.activity import ActivityPattern, ActivityRecord
from teleguard.data.schemas.threat import (
    Action,
    ActionType,
    ScoreResult,
    Severity,
    Threat,
    ThreatStatus,
    ThreatType,
)
from teleguard.data.schemas.anomaly import Anomaly
from teleguard.data.schemas.config import SystemConfigSnapshot

__all__ = [
    "EVENT_ADAPTER",
    "Event",
    "CallRecord",
    "MessageRecord",
    "BehaviorSample",
    "ActivitySnapshot",
    "ActivityRecord",
    "ActivityPattern",
    "ScoreResult",
    "Threat",
    "Action",
    "ActionType",
    "Severity",
    "ThreatStatus",
    "ThreatType",
    "Anomaly",
    "SystemConfigSnapshot",
]
