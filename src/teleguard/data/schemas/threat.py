"""Threat, Action and ScoreResult schemas."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def new_id(prefix: str) -> str:
    """Generate a prefixed identifier, e.g. thr_3f9c2a..."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    """Severity tiers shared by threats and anomalies."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ThreatType(str, Enum):
    SMS_PHISHING = "sms_phishing"
    CALL_FRAUD = "call_fraud"
    SIM_SWAP = "sim_swap"
    ANOMALOUS_TRAFFIC = "anomalous_traffic"


class ThreatStatus(str, Enum):
    """Threat lifecycle.

    analyzing -> blocked by automation; operators may later move a threat
    to resolved or false_positive. Nothing returns to analyzing.
    """
    ANALYZING = "analyzing"
    BLOCKED = "blocked"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class ActionType(str, Enum):
    BLOCK_IP = "block_ip"
    BLOCK_PHONE = "block_phone"
    MANUAL_OVERRIDE = "manual_override"
    CREATE_CASE = "create_case"


class ScoreResult(BaseModel):
    """Output of one scoring call. Never mutated."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    score: float = Field(..., ge=0.0, le=10.0, description="Risk score 0-10")
    threat_type: ThreatType = Field(..., description="Classified threat type")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Provider confidence")
    description: str = Field(default="", description="Narrative summary")
    recommendations: List[str] = Field(default_factory=list)
    provider: Literal["inference", "heuristic"] = Field(
        default="heuristic", description="Which scoring path produced this result"
    )


class Threat(BaseModel):
    """Persisted record of a qualifying scored event.

    Severity is fixed at creation and never recomputed; only `status` changes.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        json_schema_extra={
            "example": {
                "id": "thr_9a1b2c3d4e5f6a7b",
                "created_at": "2026-01-25T14:30:06Z",
                "threat_type": "sms_phishing",
                "source": "+15550123",
                "severity": "critical",
                "score": 9.1,
                "status": "blocked",
                "description": "Detected critical level sms phishing threat",
                "raw_event": {"record_type": "message", "id": "sms_1c9e04"},
                "scoring_detail": {"confidence": 0.82, "provider": "heuristic"},
            }
        },
    )

    id: str = Field(default_factory=lambda: new_id("thr"))
    created_at: datetime = Field(default_factory=utc_now)
    threat_type: ThreatType
    source: str = Field(..., description="Address or subject identifier")
    severity: Severity
    score: float = Field(..., ge=0.0, le=10.0)
    status: ThreatStatus = ThreatStatus.ANALYZING
    description: str = ""
    raw_event: Dict[str, Any] = Field(default_factory=dict)
    scoring_detail: Dict[str, Any] = Field(default_factory=dict)


class Action(BaseModel):
    """A recorded response, automated or manual. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("act"))
    created_at: datetime = Field(default_factory=utc_now)
    threat_id: Optional[str] = Field(
        default=None, description="Null for manual/system actions not tied to a threat"
    )
    action_type: ActionType
    automated: bool = False
    analyst: Optional[str] = None
    details: str = ""
