"""Stored activity records and their per-subject summary."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActivityRecord(BaseModel):
    """One historical call or SMS of a subscriber, as held by the activity store.

    Immutable once written.
    """

    model_config = ConfigDict(frozen=True)

    record_id: Optional[str] = Field(default=None, description="Store identifier")
    subject_id: str = Field(..., description="Subscriber identifier")
    timestamp: datetime = Field(..., description="Activity time")
    activity_type: Literal["call", "sms"] = Field(..., description="Activity kind")
    direction: Literal["in", "out"] = Field(..., description="Traffic direction")
    peer_address: str = Field(..., description="Other party address")
    duration_seconds: int = Field(default=0, ge=0, description="Call duration (0 for SMS)")
    location: str = Field(..., description="Serving location")
    network_type: str = Field(default="4G", description="Radio access type")
    is_roaming: bool = Field(default=False)
    is_fraud_flagged: bool = Field(default=False)


class ActivityPattern(BaseModel):
    """Aggregate view of a subscriber's activity, sent as behavior context."""

    subject_id: Optional[str] = None
    total_calls: int = 0
    total_sms: int = 0
    fraud_count: int = 0
    average_duration: float = Field(default=0.0, description="Mean call duration (seconds)")
    unique_locations: int = 0
    roaming_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    suspicious_numbers: int = Field(
        default=0, description="Distinct peers involved in fraud-flagged activity"
    )
    time_pattern: Literal["normal_hours", "unusual_hours"] = "normal_hours"
