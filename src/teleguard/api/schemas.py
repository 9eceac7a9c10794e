"""API Schemas - Request/Response models for the API Gateway."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from teleguard.data.schemas import (
    Action,
    ActionType,
    Anomaly,
    ScoreResult,
    Threat,
    ThreatStatus,
)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class BatchEventRequest(BaseModel):
    """Several raw events; each is validated on its own."""
    events: List[Dict[str, Any]] = Field(..., min_length=1, max_length=500)


class StatusUpdateRequest(BaseModel):
    """Analyst request to move a threat to a new status."""
    status: ThreatStatus
    analyst: str = Field(..., min_length=1, description="Analyst making the change")
    reason: Optional[str] = Field(default=None, description="Why the status changed")


class ManualActionRequest(BaseModel):
    """Analyst-recorded action."""
    action_type: ActionType
    analyst: str = Field(..., min_length=1)
    details: str = Field(default="")
    threat_id: Optional[str] = None


class BehaviorScoreRequest(BaseModel):
    """Window of stored activity to score as one behavior sample."""
    start: Optional[datetime] = Field(default=None, description="Window start")
    end: Optional[datetime] = Field(default=None, description="Window end")


class ConfigUpdateRequest(BaseModel):
    value: Any = Field(..., description="New flag value")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class EventResponse(BaseModel):
    """Outcome of processing one event."""
    outcome: Literal[
        "rejected", "below_threshold", "threat_created",
        "auto_responded", "retryable_error", "cancelled",
    ]
    event_id: Optional[str] = None
    score: Optional[ScoreResult] = None
    threat: Optional[Threat] = None
    action: Optional[Action] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    retryable: bool = False


class BatchEventResponse(BaseModel):
    results: List[EventResponse]
    counts: Dict[str, int] = Field(default_factory=dict, description="Results per outcome")


class ThreatListResponse(BaseModel):
    threats: List[Threat]
    count: int


class ActionListResponse(BaseModel):
    actions: List[Action]
    count: int


class AnomalyListResponse(BaseModel):
    anomalies: List[Anomaly]
    count: int


class SystemConfigResponse(BaseModel):
    """Current system flags."""
    source: str
    available: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = Field(default=None, description="Request ID for debugging")
