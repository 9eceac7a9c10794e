"""Heuristic Score Provider - local fallback when inference is unavailable.

Rules, first match wins:
- message body with a phishing indicator -> sms_phishing, 7-10
- voice call shorter than 5s or longer than 1h -> call_fraud, 6-8
- behavior sample with more than 50 recent activities -> sim_swap, 8-10
- anything else -> anomalous_traffic, 0-10

Jitter comes from an injectable random.Random, so a seeded or stubbed
generator makes the output fully deterministic.
"""

import random
from typing import Optional, Tuple

from teleguard.common.constants import ScoringConstants
from teleguard.data.schemas import (
    ActivityPattern,
    BehaviorSample,
    CallRecord,
    Event,
    MessageRecord,
    ScoreResult,
    Severity,
    SystemConfigSnapshot,
    ThreatType,
)
from teleguard.governance.classifier import classify_severity
from teleguard.scoring.base import ScoreProvider


class HeuristicScoreProvider(ScoreProvider):
    """Deterministic-given-rng keyword and threshold scoring."""

    name = "heuristic"

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        activity_threshold: int = ScoringConstants.SIM_SWAP_ACTIVITY_THRESHOLD,
        keywords: Tuple[str, ...] = ScoringConstants.PHISHING_KEYWORDS,
    ):
        """Initialize the heuristic provider.

        Args:
            rng: Randomness source for score/confidence jitter
            activity_threshold: Behavior activity count above which sim_swap is assumed
            keywords: Phishing indicators matched case-insensitively in message bodies
        """
        self._rng = rng or random.Random()
        self.activity_threshold = activity_threshold
        self.keywords = tuple(k.lower() for k in keywords)

    def score(
        self,
        event: Event,
        config: SystemConfigSnapshot,
        context: Optional[ActivityPattern] = None,
    ) -> ScoreResult:
        threat_type, (base, spread) = self._match(event)

        # Draw order is fixed: score jitter first, then confidence
        score = min(ScoringConstants.SCORE_MAX, base + self._rng.random() * spread)
        conf_base, conf_spread = ScoringConstants.HEURISTIC_CONFIDENCE_RANGE
        confidence = min(1.0, conf_base + self._rng.random() * conf_spread)

        severity = classify_severity(score)
        return ScoreResult(
            score=score,
            threat_type=threat_type,
            confidence=confidence,
            description=(
                f"Detected {severity.value} level "
                f"{threat_type.value.replace('_', ' ')} threat"
            ),
            recommendations=[
                f"Monitor {event.source} closely",
                "Consider {} response actions".format(
                    "immediate" if severity == Severity.CRITICAL else "standard"
                ),
                "Log incident for compliance reporting",
            ],
            provider="heuristic",
        )

    def _match(self, event: Event) -> Tuple[ThreatType, Tuple[float, float]]:
        if isinstance(event, MessageRecord) and self._has_phishing_indicator(event.body):
            return ThreatType.SMS_PHISHING, ScoringConstants.PHISHING_SCORE_RANGE

        if isinstance(event, CallRecord) and event.kind == "voice" and (
            event.duration_seconds < ScoringConstants.SHORT_CALL_SECONDS
            or event.duration_seconds > ScoringConstants.LONG_CALL_SECONDS
        ):
            return ThreatType.CALL_FRAUD, ScoringConstants.CALL_FRAUD_SCORE_RANGE

        if isinstance(event, BehaviorSample) and len(event.recent_activity) > self.activity_threshold:
            return ThreatType.SIM_SWAP, ScoringConstants.SIM_SWAP_SCORE_RANGE

        return ThreatType.ANOMALOUS_TRAFFIC, ScoringConstants.BASELINE_SCORE_RANGE

    def _has_phishing_indicator(self, body: str) -> bool:
        text = body.lower()
        return any(keyword in text for keyword in self.keywords)
