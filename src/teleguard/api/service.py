"""TeleGuard Service - wires the core components behind the API layer.

The service owns every long-lived object (stores, scorer, pipeline,
audit logger) and translates between API schemas and pipeline results.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from teleguard.analytics import OutlierDetector
from teleguard.api.schemas import (
    ActionListResponse,
    AnomalyListResponse,
    BatchEventResponse,
    EventResponse,
    SystemConfigResponse,
    ThreatListResponse,
)
from teleguard.common.config import (
    Config,
    ConfigSource,
    SystemConfigProvider,
    get_config,
)
from teleguard.common.exceptions import (
    ConfigUnavailableError,
    ConfigurationError,
    ThreatNotFoundError,
)
from teleguard.data.schemas import Action, ActionType, Severity, Threat, ThreatStatus, ThreatType
from teleguard.governance.audit import AuditLogger
from teleguard.governance.operator import OperatorActionHandler
from teleguard.governance.policies import ResponsePolicyEngine
from teleguard.orchestration import PipelineResult, ThreatPipeline
from teleguard.publishing import EventPublisher, InMemoryEventPublisher, SNSEventPublisher
from teleguard.scoring import ResilientScoreProvider
from teleguard.storage import create_stores


logger = logging.getLogger(__name__)


class TeleGuardService:
    """Facade over the threat pipeline, operator actions and outlier scans.

    Error Handling:
    - Pipeline outcomes are returned, never raised
    - Unknown threats raise ThreatNotFoundError
    - Disallowed transitions raise OperatorActionError
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store=None,
        activity_store=None,
        publisher: Optional[EventPublisher] = None,
        audit_logger: Optional[AuditLogger] = None,
        config_provider: Optional[SystemConfigProvider] = None,
        scorer=None,
    ):
        """Initialize the service.

        Args:
            config: Static settings. Global config if not provided.
            store: ThreatStore. Built from settings if not provided.
            activity_store: ActivityStore. Built from settings if not provided.
            publisher: EventPublisher. SNS when a topic is configured, else in-memory.
            audit_logger: Audit logger. Created under config.audit_log_dir if not provided.
            config_provider: System flag provider. Built from config.config_source.
            scorer: Score provider. ResilientScoreProvider.from_config if not provided.
        """
        self.config = config or get_config()

        if store is None or activity_store is None:
            default_store, default_activity = create_stores(self.config)
            store = default_store if store is None else store
            activity_store = default_activity if activity_store is None else activity_store
        self.store = store
        self.activity_store = activity_store

        self.publisher = publisher if publisher is not None else self._build_publisher()
        self.audit_logger = audit_logger or AuditLogger(log_dir=str(self.config.audit_log_dir))
        self.config_provider = config_provider or SystemConfigProvider(
            source=ConfigSource(self.config.config_source),
            store=self.store,
            region=self.config.aws_region,
        )

        self.policy_engine = ResponsePolicyEngine(
            self.store,
            policy_file=str(self.config.policy_file) if self.config.policy_file else None,
        )
        self.scorer = scorer or ResilientScoreProvider.from_config(
            self.config, activity_store=self.activity_store
        )
        self.pipeline = ThreatPipeline(
            store=self.store,
            scorer=self.scorer,
            policy_engine=self.policy_engine,
            config_provider=self.config_provider,
            audit_logger=self.audit_logger,
            publisher=self.publisher,
            activity_store=self.activity_store,
            max_workers=self.config.pipeline_max_workers,
        )
        self.operator = OperatorActionHandler(
            self.store,
            audit_logger=self.audit_logger,
            publisher=self.publisher,
            rules=self.policy_engine.rules,
        )
        self.outlier_detector = OutlierDetector(
            publisher=self.publisher,
            audit_logger=self.audit_logger,
            policy_version=self.policy_engine.policy_version,
        )

        logger.info(
            f"TeleGuardService initialized: storage={self.config.storage_backend.value}, "
            f"inference={'on' if self.config.inference_configured else 'off'}, "
            f"policy_version={self.policy_engine.policy_version}"
        )

    def _build_publisher(self) -> EventPublisher:
        if self.config.sns_topic_arn:
            return SNSEventPublisher(
                topic_arn=self.config.sns_topic_arn, region=self.config.aws_region
            )
        return InMemoryEventPublisher()

    def shutdown(self) -> None:
        """Stop the pipeline; queued events are cancelled."""
        self.pipeline.shutdown(wait=True)
        logger.info("TeleGuardService shutdown complete")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def process_event(self, payload: Dict[str, Any]) -> EventResponse:
        return _to_response(self.pipeline.process(payload))

    def process_batch(self, payloads: List[Dict[str, Any]]) -> BatchEventResponse:
        results = [_to_response(r) for r in self.pipeline.process_batch(payloads)]
        return BatchEventResponse(
            results=results,
            counts=dict(Counter(r.outcome for r in results)),
        )

    def score_behavior(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> EventResponse:
        """Score a subject's stored activity as one behavior sample."""
        sample = self.pipeline.build_behavior_sample(subject_id, start=start, end=end)
        return _to_response(self.pipeline.process(sample))

    # ------------------------------------------------------------------
    # Threats and actions
    # ------------------------------------------------------------------

    def list_threats(
        self,
        limit: int,
        offset: int = 0,
        severity: Optional[Severity] = None,
        threat_type: Optional[ThreatType] = None,
        status: Optional[ThreatStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ThreatListResponse:
        threats = self.store.list_threats(
            limit=limit, offset=offset, severity=severity, threat_type=threat_type,
            status=status, start=start, end=end,
        )
        return ThreatListResponse(threats=threats, count=len(threats))

    def get_threat(self, threat_id: str) -> Threat:
        threat = self.store.get_threat(threat_id)
        if threat is None:
            raise ThreatNotFoundError(threat_id)
        return threat

    def change_status(
        self, threat_id: str, status: ThreatStatus, analyst: str, reason: Optional[str] = None
    ) -> Threat:
        return self.operator.change_status(threat_id, status, analyst, reason=reason)

    def list_actions(self, limit: int, threat_id: Optional[str] = None) -> ActionListResponse:
        if threat_id is not None:
            self.get_threat(threat_id)
            actions = self.store.get_actions_for_threat(threat_id)[:limit]
        else:
            actions = self.store.list_actions(limit=limit)
        return ActionListResponse(actions=actions, count=len(actions))

    def record_action(
        self,
        action_type: ActionType,
        analyst: str,
        details: str = "",
        threat_id: Optional[str] = None,
    ) -> Action:
        return self.operator.record_manual_action(
            action_type, analyst, details=details, threat_id=threat_id
        )

    # ------------------------------------------------------------------
    # Analytics and config
    # ------------------------------------------------------------------

    def scan_anomalies(
        self,
        subject_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> AnomalyListResponse:
        kwargs = {"limit": limit} if limit else {}
        anomalies = self.outlier_detector.scan(
            self.activity_store, subject_id=subject_id, start=start, end=end, **kwargs
        )
        return AnomalyListResponse(anomalies=anomalies, count=len(anomalies))

    def get_system_config(self) -> SystemConfigResponse:
        source = self.config_provider.source.value
        try:
            snapshot = self.config_provider.snapshot()
        except ConfigUnavailableError as e:
            logger.warning(f"System config unavailable: {e.message}")
            return SystemConfigResponse(source=source, available=False, config={})
        return SystemConfigResponse(source=source, config=snapshot.model_dump())

    def update_system_config(self, key: str, value: Any) -> SystemConfigResponse:
        if not self.config_provider.set(key, value):
            raise ConfigurationError(
                f"Config source '{self.config_provider.source.value}' does not accept updates",
                details={"key": key},
            )
        self.audit_logger.log_system_event(
            "system_config_updated",
            self.policy_engine.policy_version,
            metadata={"key": key, "value": value},
        )
        return self.get_system_config()

    def health(self) -> Dict[str, Any]:
        store_ok = self.store.health_check()
        activity_ok = self.activity_store.health_check()
        return {
            "status": "healthy" if store_ok and activity_ok else "degraded",
            "threat_store": store_ok,
            "activity_store": activity_ok,
            "policy_version": self.policy_engine.policy_version,
        }


def _to_response(result: PipelineResult) -> EventResponse:
    return EventResponse(**result.to_dict())
