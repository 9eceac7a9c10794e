"""Governance schemas - response rules, policy evaluations and audit entries."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from teleguard.common.constants import PolicyConstants
from teleguard.data.schemas.threat import Action, ActionType, Severity, ThreatType, new_id, utc_now


class AuditEventType(str, Enum):
    """Types of audit events."""
    THREAT_CREATED = "threat_created"
    POLICY_EVALUATION = "policy_evaluation"
    AUTOMATED_ACTION = "automated_action"
    MANUAL_ACTION = "manual_action"
    STATUS_TRANSITION = "status_transition"
    EVENT_REJECTED = "event_rejected"
    ANOMALY_SCAN = "anomaly_scan"
    SYSTEM_EVENT = "system_event"


class SkipReason(str, Enum):
    """Why a policy evaluation produced no action."""
    CONFIG_UNAVAILABLE = "config_unavailable"
    NOT_ANALYZING = "not_analyzing"
    NO_MATCH = "no_match"


class ResponseRule(BaseModel):
    """One automated-response rule. Rules are evaluated in file order.

    A rule matches when every `when_*` condition present holds and the
    named system config flag equals `flag_value`.
    """
    name: str
    when_severity: Optional[Severity] = None
    when_threat_type: Optional[ThreatType] = None
    config_flag: Literal["auto_block_critical", "auto_block_fraud", "sim_swap_manual"]
    flag_value: bool = True
    action: ActionType
    action_by_threat_type: Dict[ThreatType, ActionType] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _has_condition(self) -> "ResponseRule":
        if self.when_severity is None and self.when_threat_type is None:
            raise ValueError(f"Rule '{self.name}' needs when_severity or when_threat_type")
        return self

    def action_for(self, threat_type: ThreatType) -> ActionType:
        return self.action_by_threat_type.get(threat_type, self.action)


def _default_rules() -> List[ResponseRule]:
    return [
        ResponseRule(
            name="auto_block_critical",
            when_severity=Severity.CRITICAL,
            config_flag="auto_block_critical",
            flag_value=True,
            action=ActionType.BLOCK_IP,
            action_by_threat_type={ThreatType.SMS_PHISHING: ActionType.BLOCK_PHONE},
        ),
        ResponseRule(
            name="auto_block_fraud",
            when_threat_type=ThreatType.CALL_FRAUD,
            config_flag="auto_block_fraud",
            flag_value=True,
            action=ActionType.BLOCK_PHONE,
        ),
        ResponseRule(
            name="sim_swap_case",
            when_threat_type=ThreatType.SIM_SWAP,
            config_flag="sim_swap_manual",
            flag_value=False,
            action=ActionType.CREATE_CASE,
        ),
    ]


class ResponseRules(BaseModel):
    """Parsed response policy from YAML configuration.

    In-memory representation of config/response_policy.yaml. Every section
    has defaults, so an empty file yields the standard policy.
    """

    class Metadata(BaseModel):
        version: str = "1.0.0"
        last_updated: Optional[str] = None
        author: Optional[str] = None
        description: Optional[str] = None

    class SeverityThresholds(BaseModel):
        critical_min: float = Field(default=PolicyConstants.CRITICAL_MIN_SCORE, ge=0.0, le=10.0)
        high_min: float = Field(default=PolicyConstants.HIGH_MIN_SCORE, ge=0.0, le=10.0)
        medium_min: float = Field(default=PolicyConstants.MEDIUM_MIN_SCORE, ge=0.0, le=10.0)

        @model_validator(mode="after")
        def _ordered(self) -> "ResponseRules.SeverityThresholds":
            if not self.critical_min > self.high_min > self.medium_min:
                raise ValueError("severity thresholds must be strictly decreasing")
            return self

    class ThreatCreation(BaseModel):
        # Strict: score must be greater than this to create a Threat
        min_score_exclusive: float = Field(
            default=PolicyConstants.THREAT_CREATION_THRESHOLD, ge=0.0, le=10.0
        )

    class OperatorRules(BaseModel):
        require_analyst: bool = True
        min_reason_length: int = Field(default=0, ge=0)

    metadata: Metadata = Field(default_factory=Metadata)
    severity_thresholds: SeverityThresholds = Field(default_factory=SeverityThresholds)
    threat_creation: ThreatCreation = Field(default_factory=ThreatCreation)
    response_rules: List[ResponseRule] = Field(default_factory=_default_rules)
    operator: OperatorRules = Field(default_factory=OperatorRules)


class PolicyEvaluation(BaseModel):
    """Outcome of evaluating one Threat against the response rules."""
    evaluation_id: str = Field(default_factory=lambda: new_id("eval"))
    timestamp: datetime = Field(default_factory=utc_now)
    threat_id: str
    policy_version: str
    matched_rule: Optional[str] = None
    action_type: Optional[ActionType] = None
    applied: bool = Field(default=False, description="Action recorded and threat blocked")
    skipped_reason: Optional[SkipReason] = None
    action: Optional[Action] = None


class AuditEntry(BaseModel):
    """A single immutable audit log entry."""
    entry_id: str = Field(default_factory=lambda: new_id("aud"))
    timestamp: datetime = Field(default_factory=utc_now)
    event_type: AuditEventType

    threat_id: Optional[str] = None
    action_id: Optional[str] = None
    event_id: Optional[str] = None
    source: Optional[str] = None

    action: Optional[str] = None
    decided_by: Optional[Literal["SYSTEM", "POLICY", "ANALYST"]] = None
    analyst: Optional[str] = None

    policy_version: str = Field(..., description="Policy version in effect")

    previous_hash: Optional[str] = None
    entry_hash: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_jsonl(self) -> str:
        """Serialize entry to JSONL format."""
        return json.dumps(self.model_dump(mode="json"), default=str)

    @classmethod
    def from_jsonl(cls, line: str) -> "AuditEntry":
        """Deserialize entry from JSONL format."""
        return cls.model_validate(json.loads(line))
