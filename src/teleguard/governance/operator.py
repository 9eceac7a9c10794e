"""Operator Action Handler - manual actions and status changes by analysts.

Every operator change is attributed to an analyst and audited. Threats
never return to `analyzing`.
"""

import logging
from typing import Dict, FrozenSet, Optional

from teleguard.common.exceptions import OperatorActionError, ThreatNotFoundError
from teleguard.data.schemas import Action, ActionType, Threat, ThreatStatus
from teleguard.governance.schemas import ResponseRules
from teleguard.publishing import TOPIC_ACTION_CREATED, TOPIC_STATUS_CHANGED

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[ThreatStatus, FrozenSet[ThreatStatus]] = {
    ThreatStatus.ANALYZING: frozenset({
        ThreatStatus.BLOCKED,
        ThreatStatus.RESOLVED,
        ThreatStatus.FALSE_POSITIVE,
    }),
    ThreatStatus.BLOCKED: frozenset({ThreatStatus.RESOLVED, ThreatStatus.FALSE_POSITIVE}),
    ThreatStatus.RESOLVED: frozenset(),
    ThreatStatus.FALSE_POSITIVE: frozenset(),
}


class OperatorActionHandler:
    """Handles creation and logging of analyst actions."""

    def __init__(self, store, audit_logger=None, publisher=None, rules: Optional[ResponseRules] = None):
        self.store = store
        self.audit_logger = audit_logger
        self.publisher = publisher
        self.rules = rules or ResponseRules()

    @property
    def policy_version(self) -> str:
        return self.rules.metadata.version

    def record_manual_action(
        self,
        action_type: ActionType,
        analyst: str,
        details: str = "",
        threat_id: Optional[str] = None,
    ) -> Action:
        """Record an action taken by an analyst, optionally tied to a threat."""
        self._validate_analyst(analyst)
        if threat_id is not None and self.store.get_threat(threat_id) is None:
            raise ThreatNotFoundError(threat_id)

        action = self.store.create_action(Action(
            threat_id=threat_id,
            action_type=ActionType(action_type),
            automated=False,
            analyst=analyst.strip(),
            details=details,
        ))

        logger.info(
            f"Manual {action.action_type.value} recorded by {action.analyst}",
            extra={"action_id": action.id, "threat_id": threat_id},
        )
        if self.audit_logger is not None:
            self.audit_logger.log_manual_action(action, self.policy_version)
        if self.publisher is not None:
            self.publisher.publish(TOPIC_ACTION_CREATED, action.model_dump(mode="json"))
        return action

    def change_status(
        self,
        threat_id: str,
        status: ThreatStatus,
        analyst: str,
        reason: Optional[str] = None,
    ) -> Threat:
        """Move a threat to a new status on an analyst's behalf.

        Raises:
            ThreatNotFoundError: If the threat does not exist
            OperatorActionError: If the transition is not allowed
        """
        self._validate_analyst(analyst)
        self._validate_reason(reason)
        status = ThreatStatus(status)

        threat = self.store.get_threat(threat_id)
        if threat is None:
            raise ThreatNotFoundError(threat_id)

        previous = threat.status
        if status not in ALLOWED_TRANSITIONS[previous]:
            raise OperatorActionError(
                f"Cannot move threat from {previous.value} to {status.value}",
                details={"threat_id": threat_id, "from": previous.value, "to": status.value},
            )

        updated = self.store.update_threat_status(threat_id, status, expected_status=previous)
        if updated is None:
            raise OperatorActionError(
                "Threat status changed concurrently, reload and retry",
                details={"threat_id": threat_id, "expected": previous.value},
            )

        logger.info(
            f"Threat {threat_id} moved {previous.value} -> {status.value} by {analyst}",
            extra={"threat_id": threat_id},
        )
        if self.audit_logger is not None:
            self.audit_logger.log_status_transition(
                threat_id, previous, status, self.policy_version, analyst=analyst, reason=reason
            )
        if self.publisher is not None:
            self.publisher.publish(TOPIC_STATUS_CHANGED, {
                "threat_id": threat_id,
                "from_status": previous.value,
                "to_status": status.value,
                "analyst": analyst,
            })
        return updated

    def _validate_analyst(self, analyst: Optional[str]) -> None:
        if self.rules.operator.require_analyst and (not analyst or not analyst.strip()):
            raise OperatorActionError("Analyst is required for operator actions")

    def _validate_reason(self, reason: Optional[str]) -> None:
        min_length = self.rules.operator.min_reason_length
        if min_length and (not reason or len(reason.strip()) < min_length):
            raise OperatorActionError(
                f"Reason must be at least {min_length} characters. "
                f"Got {len(reason.strip()) if reason else 0} characters."
            )
