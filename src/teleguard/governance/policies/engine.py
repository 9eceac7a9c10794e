"""Response Policy Engine - decides and records automated responses."""

import logging
from pathlib import Path
from typing import Optional, Tuple

import yaml

from teleguard.common.exceptions import ConfigurationError, PersistenceConflictError
from teleguard.data.schemas import (
    Action,
    ActionType,
    SystemConfigSnapshot,
    Threat,
    ThreatStatus,
)
from teleguard.governance.classifier import ThreatClassifier
from teleguard.governance.schemas import (
    PolicyEvaluation,
    ResponseRule,
    ResponseRules,
    SkipReason,
)

logger = logging.getLogger(__name__)


class ResponsePolicyEngine:
    """Evaluates response rules against a freshly created Threat.

    Rules are checked in order and the first match wins. A match records
    one automated Action and moves the Threat to blocked as a single unit
    through the store. Only threats still `analyzing` are evaluated, so a
    repeated evaluation is a no-op.
    """

    DEFAULT_POLICY_FILE = (
        Path(__file__).parent.parent.parent.parent.parent / "config" / "response_policy.yaml"
    )

    def __init__(self, store, policy_file: Optional[str] = None):
        """Initialize policy engine with rules from YAML.

        Args:
            store: ThreatStore used to re-read status and record responses
            policy_file: Path to response_policy.yaml. Built-in rules are used
                when not provided and the default file is absent.
        """
        self.store = store
        self.policy_file = Path(policy_file) if policy_file else self.DEFAULT_POLICY_FILE
        self._explicit_file = policy_file is not None
        self.rules: ResponseRules = self._load_policies()

    def _load_policies(self) -> ResponseRules:
        """Load and validate policies from YAML file."""
        if not self.policy_file.exists():
            if self._explicit_file:
                raise FileNotFoundError(f"Policy file not found: {self.policy_file}")
            logger.info("No response policy file found, using built-in rules")
            return ResponseRules()

        with open(self.policy_file, "r") as f:
            raw_config = yaml.safe_load(f) or {}

        try:
            return ResponseRules.model_validate(raw_config)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid response policy file: {self.policy_file}",
                details={"error": str(e)},
            ) from e

    def reload_policies(self) -> None:
        self.rules = self._load_policies()

    @property
    def policy_version(self) -> str:
        """Get current policy version."""
        return self.rules.metadata.version

    def build_classifier(self) -> ThreatClassifier:
        """Classifier using this policy's thresholds."""
        thresholds = self.rules.severity_thresholds
        return ThreatClassifier(
            critical_min=thresholds.critical_min,
            high_min=thresholds.high_min,
            medium_min=thresholds.medium_min,
            creation_threshold=self.rules.threat_creation.min_score_exclusive,
        )

    def decide(
        self, threat: Threat, config: SystemConfigSnapshot
    ) -> Optional[Tuple[ResponseRule, ActionType]]:
        """First matching rule and its action, without side effects."""
        for rule in self.rules.response_rules:
            if rule.when_severity is not None and threat.severity != rule.when_severity:
                continue
            if rule.when_threat_type is not None and threat.threat_type != rule.when_threat_type:
                continue
            if getattr(config, rule.config_flag) != rule.flag_value:
                continue
            return rule, rule.action_for(threat.threat_type)
        return None

    def evaluate(
        self, threat: Threat, config: Optional[SystemConfigSnapshot]
    ) -> PolicyEvaluation:
        """Evaluate a threat and apply the matching response.

        Args:
            threat: Threat to evaluate
            config: Snapshot for this run; None when config could not be read,
                in which case no automated action is taken

        Returns:
            PolicyEvaluation describing what happened

        Raises:
            PersistenceConflictError: If the action + status pair failed; the
                threat stays analyzing
        """
        if config is None:
            logger.warning(
                "System config unavailable, skipping automated response",
                extra={"threat_id": threat.id},
            )
            return self._skipped(threat, SkipReason.CONFIG_UNAVAILABLE)

        try:
            current = self.store.get_threat(threat.id) or threat
        except Exception as e:
            logger.error(f"Failed to re-read threat {threat.id} before response: {e}")
            raise PersistenceConflictError(
                "Failed to read threat before automated response", threat_id=threat.id
            ) from e
        if current.status != ThreatStatus.ANALYZING:
            return self._skipped(threat, SkipReason.NOT_ANALYZING)

        decision = self.decide(current, config)
        if decision is None:
            return self._skipped(threat, SkipReason.NO_MATCH)

        rule, action_type = decision
        action = Action(
            threat_id=threat.id,
            action_type=action_type,
            automated=True,
            details=(
                f"Auto-blocked {current.source} due to {current.threat_type.value} "
                f"with score {current.score:.2f}"
            ),
        )

        try:
            applied = self.store.record_automated_response(threat.id, action)
        except PersistenceConflictError:
            raise
        except Exception as e:
            logger.error(f"Automated response write failed for {threat.id}: {e}")
            raise PersistenceConflictError(
                "Failed to record automated response",
                threat_id=threat.id,
                details={"action_type": action_type.value},
            ) from e
        if not applied:
            return self._skipped(threat, SkipReason.NOT_ANALYZING, rule.name, action_type)

        logger.info(
            f"Automated {action_type.value} for threat {threat.id}",
            extra={"threat_id": threat.id, "rule": rule.name, "action_id": action.id},
        )
        return PolicyEvaluation(
            threat_id=threat.id,
            policy_version=self.policy_version,
            matched_rule=rule.name,
            action_type=action_type,
            applied=True,
            action=action,
        )

    def _skipped(
        self,
        threat: Threat,
        reason: SkipReason,
        rule: Optional[str] = None,
        action_type: Optional[ActionType] = None,
    ) -> PolicyEvaluation:
        return PolicyEvaluation(
            threat_id=threat.id,
            policy_version=self.policy_version,
            matched_rule=rule,
            action_type=action_type,
            skipped_reason=reason,
        )
