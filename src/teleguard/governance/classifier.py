"""Threat Classifier - maps scores to severity and builds Threat records."""

import logging
from typing import Optional

from teleguard.common.constants import PolicyConstants
from teleguard.data.schemas import Event, ScoreResult, Severity, Threat, ThreatStatus

logger = logging.getLogger(__name__)


def classify_severity(
    score: float,
    critical_min: float = PolicyConstants.CRITICAL_MIN_SCORE,
    high_min: float = PolicyConstants.HIGH_MIN_SCORE,
    medium_min: float = PolicyConstants.MEDIUM_MIN_SCORE,
) -> Severity:
    """Severity tier for a score. Thresholds are inclusive lower bounds."""
    if score >= critical_min:
        return Severity.CRITICAL
    if score >= high_min:
        return Severity.HIGH
    if score >= medium_min:
        return Severity.MEDIUM
    return Severity.LOW


class ThreatClassifier:
    """Decides whether a scored event becomes a Threat, and builds it."""

    def __init__(
        self,
        critical_min: float = PolicyConstants.CRITICAL_MIN_SCORE,
        high_min: float = PolicyConstants.HIGH_MIN_SCORE,
        medium_min: float = PolicyConstants.MEDIUM_MIN_SCORE,
        creation_threshold: float = PolicyConstants.THREAT_CREATION_THRESHOLD,
    ):
        if not critical_min > high_min > medium_min:
            raise ValueError("Severity thresholds must be strictly decreasing")
        self.critical_min = critical_min
        self.high_min = high_min
        self.medium_min = medium_min
        self.creation_threshold = creation_threshold

    def severity_for(self, score: float) -> Severity:
        return classify_severity(score, self.critical_min, self.high_min, self.medium_min)

    def qualifies(self, score: float) -> bool:
        """Strict cutoff: scores at or below the threshold create no Threat."""
        return score > self.creation_threshold

    def classify(self, event: Event, result: ScoreResult) -> Optional[Threat]:
        """Build the Threat for a scored event, or None below the cutoff."""
        if not self.qualifies(result.score):
            logger.debug(
                "Score below threat creation threshold",
                extra={"score": result.score, "threshold": self.creation_threshold},
            )
            return None

        return Threat(
            threat_type=result.threat_type,
            source=event.source,
            severity=self.severity_for(result.score),
            score=result.score,
            status=ThreatStatus.ANALYZING,
            description=result.description,
            raw_event=event.model_dump(mode="json"),
            scoring_detail={
                "confidence": result.confidence,
                "recommendations": list(result.recommendations),
                "provider": result.provider,
            },
        )
