"""Pipeline results - what the orchestrator hands back per event."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from teleguard.data.schemas import Action, ScoreResult, Threat
from teleguard.governance.schemas import PolicyEvaluation


class PipelineOutcome(str, Enum):
    """Terminal outcome of processing one event."""
    REJECTED = "rejected"                # invalid event, nothing scored
    BELOW_THRESHOLD = "below_threshold"  # scored, no Threat created
    THREAT_CREATED = "threat_created"    # Threat left analyzing
    AUTO_RESPONDED = "auto_responded"    # Threat blocked with one automated Action
    RETRYABLE_ERROR = "retryable_error"  # persistence failed; safe to retry the event
    CANCELLED = "cancelled"              # pipeline shut down, nothing persisted


@dataclass
class PipelineResult:
    """Result of processing one event."""
    outcome: PipelineOutcome
    event_id: Optional[str] = None
    score: Optional[ScoreResult] = None
    threat: Optional[Threat] = None
    action: Optional[Action] = None
    evaluation: Optional[PolicyEvaluation] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None

    @property
    def retryable(self) -> bool:
        return self.outcome in (PipelineOutcome.RETRYABLE_ERROR, PipelineOutcome.CANCELLED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "event_id": self.event_id,
            "score": self.score.model_dump(mode="json") if self.score else None,
            "threat": self.threat.model_dump(mode="json") if self.threat else None,
            "action": self.action.model_dump(mode="json") if self.action else None,
            "warnings": list(self.warnings),
            "error": self.error,
            "retryable": self.retryable,
        }
