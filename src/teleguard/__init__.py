"""TeleGuard - Telecom threat scoring and automated response."""

__version__ = "0.1.0"
__author__ = "TeleGuard Team"

from teleguard.data.schemas import (
    Action,
    Anomaly,
    ScoreResult,
    Severity,
    Threat,
    ThreatStatus,
    ThreatType,
)

__all__ = [
    "Action",
    "Anomaly",
    "ScoreResult",
    "Severity",
    "Threat",
    "ThreatStatus",
    "ThreatType",
]
