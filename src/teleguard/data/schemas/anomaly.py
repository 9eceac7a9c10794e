"""Anomaly schema - findings of the statistical outlier pass."""

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

from teleguard.data.schemas.threat import Severity, new_id, utc_now


class Anomaly(BaseModel):
    """A statistical outlier finding. Not a threat; shares the severity tiers."""

    id: str = Field(default_factory=lambda: new_id("anm"))
    timestamp: datetime = Field(default_factory=utc_now)
    anomaly_type: str = Field(..., description="call_duration_outlier | location_activity_spike | fraud_rate_spike")
    severity: Severity
    score: float = Field(..., ge=0.0, le=10.0)
    description: str
    affected_metrics: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: str = Field(default="statistical_analysis")
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("affected_metrics")
    @classmethod
    def _unique_metrics(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))
