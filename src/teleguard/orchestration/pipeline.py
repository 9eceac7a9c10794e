"""Threat Pipeline - intake, scoring, classification, response, persistence.

Lifecycle per event:
1. Validate the event
2. Read one system config snapshot
3. Score (inference or heuristic; never raises)
4. Classify; scores at or below the cutoff stop here
5. Persist the Threat
6. Evaluate the response policy (action + block as one unit)

Events are independent, so a batch fans out one task per event on a
thread pool. Within an event the steps are strictly sequential.
"""

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from teleguard.common.constants import DataConstants, PipelineConstants
from teleguard.common.exceptions import (
    ConfigUnavailableError,
    InvalidEventError,
    PersistenceConflictError,
)
from teleguard.data.schemas import (
    ActivitySnapshot,
    BehaviorSample,
    Event,
    SystemConfigSnapshot,
    Threat,
    ThreatStatus,
)
from teleguard.data.validators import validate_event
from teleguard.governance.policies.engine import ResponsePolicyEngine
from teleguard.orchestration.results import PipelineOutcome, PipelineResult
from teleguard.publishing import (
    TOPIC_ACTION_CREATED,
    TOPIC_STATUS_CHANGED,
    TOPIC_THREAT_CREATED,
)
from teleguard.scoring.base import ScoreProvider

logger = logging.getLogger(__name__)

CONFIG_UNAVAILABLE_WARNING = "system config unavailable; automated response skipped"


class ThreatPipeline:
    """Orchestrates scoring and automated response for telecom events.

    Never raises for scoring, validation or persistence-conflict failures;
    each is reported through PipelineResult.outcome.
    """

    def __init__(
        self,
        store,
        scorer: ScoreProvider,
        policy_engine: ResponsePolicyEngine,
        config_provider,
        audit_logger=None,
        publisher=None,
        activity_store=None,
        max_workers: int = PipelineConstants.DEFAULT_MAX_WORKERS,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize the pipeline.

        Args:
            store: ThreatStore for threats and actions
            scorer: Score provider (normally ResilientScoreProvider)
            policy_engine: Response policy engine
            config_provider: Object with snapshot() -> SystemConfigSnapshot
            audit_logger: AuditLogger; audit failures are logged, never raised
            publisher: EventPublisher for created threats and actions
            activity_store: ActivityStore for behavior samples
            max_workers: Pool size for process_batch()
            executor: Custom executor. Created on first batch if not provided.
        """
        self.store = store
        self.scorer = scorer
        self.policy_engine = policy_engine
        self.classifier = policy_engine.build_classifier()
        self.config_provider = config_provider
        self.audit_logger = audit_logger
        self.publisher = publisher
        self.activity_store = activity_store
        self.max_workers = max_workers

        self._executor = executor
        self._executor_lock = threading.Lock()
        self._shutdown = threading.Event()

    @property
    def policy_version(self) -> str:
        return self.policy_engine.policy_version

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown.is_set()

    def process(self, event: Union[Event, Dict[str, Any]]) -> PipelineResult:
        """Process one event through the full pipeline."""
        if self._shutdown.is_set():
            return PipelineResult(outcome=PipelineOutcome.CANCELLED, event_id=_event_id(event))

        try:
            event = validate_event(event)
        except InvalidEventError as e:
            logger.info(f"Event rejected: {e.message}", extra={"event_id": _event_id(event)})
            self._audit("log_event_rejected", self.policy_version,
                        event_id=_event_id(event), errors=e.details.get("errors"))
            return PipelineResult(
                outcome=PipelineOutcome.REJECTED,
                event_id=_event_id(event),
                error=e.to_dict(),
            )

        warnings: List[str] = []
        policy_config: Optional[SystemConfigSnapshot]
        try:
            policy_config = self.config_provider.snapshot()
            scoring_config = policy_config
        except ConfigUnavailableError as e:
            logger.warning(f"System config unavailable: {e.message}", extra={"event_id": event.id})
            warnings.append(CONFIG_UNAVAILABLE_WARNING)
            policy_config = None
            scoring_config = SystemConfigSnapshot()

        score = self.scorer.score(event, scoring_config)

        if self._shutdown.is_set():
            logger.info("Pipeline shut down during scoring, discarding event",
                        extra={"event_id": event.id})
            return PipelineResult(
                outcome=PipelineOutcome.CANCELLED, event_id=event.id, score=score, warnings=warnings
            )

        threat = self.classifier.classify(event, score)
        if threat is None:
            logger.info(
                f"Score {score.score:.2f} at or below threat threshold, no threat created",
                extra={"event_id": event.id, "threat_type": score.threat_type.value},
            )
            self._audit("log_system_event", "event_below_threshold", self.policy_version,
                        metadata={"event_id": event.id, "score": score.score,
                                  "threat_type": score.threat_type.value,
                                  "provider": score.provider})
            return PipelineResult(
                outcome=PipelineOutcome.BELOW_THRESHOLD,
                event_id=event.id,
                score=score,
                warnings=warnings,
            )

        try:
            threat = self.store.create_threat(threat)
        except Exception as e:
            logger.exception(f"Failed to persist threat for event {event.id}")
            error = PersistenceConflictError(
                f"Failed to persist threat: {e}", threat_id=threat.id
            )
            return PipelineResult(
                outcome=PipelineOutcome.RETRYABLE_ERROR,
                event_id=event.id,
                score=score,
                warnings=warnings,
                error=error.to_dict(),
            )

        self._audit("log_threat_created", threat, self.policy_version, event_id=event.id)
        self._publish(TOPIC_THREAT_CREATED, threat.model_dump(mode="json"))

        return self._respond(event, score, threat, policy_config, warnings)

    def _respond(self, event, score, threat: Threat, policy_config, warnings) -> PipelineResult:
        try:
            evaluation = self.policy_engine.evaluate(threat, policy_config)
        except PersistenceConflictError as e:
            logger.warning(f"Automated response failed, threat left analyzing: {e.message}",
                           extra={"threat_id": threat.id})
            return PipelineResult(
                outcome=PipelineOutcome.RETRYABLE_ERROR,
                event_id=event.id,
                score=score,
                threat=self._reload(threat),
                warnings=warnings,
                error=e.to_dict(),
            )

        self._audit("log_policy_evaluation", evaluation)

        if not evaluation.applied:
            return PipelineResult(
                outcome=PipelineOutcome.THREAT_CREATED,
                event_id=event.id,
                score=score,
                threat=threat,
                evaluation=evaluation,
                warnings=warnings,
            )

        blocked = self._reload(threat, ThreatStatus.BLOCKED)
        self._audit("log_automated_action", evaluation.action, blocked, self.policy_version)
        self._audit("log_status_transition", threat.id, threat.status, blocked.status,
                    self.policy_version)
        self._publish(TOPIC_ACTION_CREATED, evaluation.action.model_dump(mode="json"))
        self._publish(TOPIC_STATUS_CHANGED, {
            "threat_id": threat.id,
            "from_status": threat.status.value,
            "to_status": blocked.status.value,
            "analyst": None,
        })

        return PipelineResult(
            outcome=PipelineOutcome.AUTO_RESPONDED,
            event_id=event.id,
            score=score,
            threat=blocked,
            action=evaluation.action,
            evaluation=evaluation,
            warnings=warnings,
        )

    def process_batch(self, events: Sequence[Union[Event, Dict[str, Any]]]) -> List[PipelineResult]:
        """Process events concurrently, one task per event. Results keep input order."""
        if self._shutdown.is_set():
            return [
                PipelineResult(outcome=PipelineOutcome.CANCELLED, event_id=_event_id(e))
                for e in events
            ]

        executor = self._get_executor()
        futures: List[Future] = [executor.submit(self.process, e) for e in events]

        results = []
        for event, future in zip(events, futures):
            try:
                results.append(future.result())
            except CancelledError:
                results.append(
                    PipelineResult(outcome=PipelineOutcome.CANCELLED, event_id=_event_id(event))
                )
            except Exception as e:
                logger.exception(f"Event {_event_id(event)} failed in batch")
                results.append(PipelineResult(
                    outcome=PipelineOutcome.RETRYABLE_ERROR,
                    event_id=_event_id(event),
                    error={
                        "error": "PROCESSING_FAILED",
                        "message": str(e),
                        "details": {"error_type": type(e).__name__},
                        "retryable": True,
                    },
                ))
        return results

    def build_behavior_sample(
        self,
        subject_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = DataConstants.ACTIVITY_SCAN_LIMIT,
    ) -> BehaviorSample:
        """Assemble a behavior sample from stored activity, oldest first."""
        if self.activity_store is None:
            raise InvalidEventError("No activity store configured for behavior samples")

        records = self.activity_store.get_activities(
            subject_id=subject_id, start=start, end=end, limit=limit
        )
        snapshots = [
            ActivitySnapshot(
                timestamp=r.timestamp,
                activity_type=r.activity_type,
                direction=r.direction,
                duration_seconds=r.duration_seconds,
                location=r.location,
                peer_address=r.peer_address,
                is_roaming=r.is_roaming,
            )
            for r in sorted(records, key=lambda r: r.timestamp)
        ]
        return BehaviorSample(
            subject_id=subject_id,
            recent_activity=snapshots,
            timestamp=datetime.now(timezone.utc),
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work, close the scorer and cancel queued events."""
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.scorer.close()
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Threat pipeline shut down")

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="PipelineWorker"
                )
                logger.info(f"Created pipeline executor with {self.max_workers} workers")
            return self._executor

    def _reload(self, threat: Threat, expected_status: Optional[ThreatStatus] = None) -> Threat:
        """Re-read a threat for reporting; a failed read falls back to the local copy."""
        try:
            current = self.store.get_threat(threat.id)
        except Exception as e:
            logger.warning(f"Could not re-read threat {threat.id}: {e}")
            current = None
        if current is not None:
            return current
        if expected_status is not None:
            return threat.model_copy(update={"status": expected_status})
        return threat

    def _audit(self, method: str, *args, **kwargs) -> None:
        if self.audit_logger is None:
            return
        try:
            getattr(self.audit_logger, method)(*args, **kwargs)
        except Exception as e:
            logger.error(f"Audit write failed ({method}): {e}")

    def _publish(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.publish(topic, payload)
        except Exception as e:
            logger.error(f"Publish failed ({topic}): {e}")


def _event_id(event: Any) -> Optional[str]:
    if isinstance(event, dict):
        return event.get("id") or event.get("subject_id")
    return getattr(event, "id", None)
