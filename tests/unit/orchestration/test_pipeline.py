"""Unit tests for the threat pipeline."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from teleguard.common.exceptions import InvalidEventError
from teleguard.data.schemas import (
    ActionType,
    BehaviorSample,
    Severity,
    SystemConfigSnapshot,
    ThreatStatus,
    ThreatType,
)
from teleguard.governance.policies import ResponsePolicyEngine
from teleguard.governance.schemas import AuditEventType, SkipReason
from teleguard.orchestration import PipelineOutcome, ThreatPipeline
from teleguard.orchestration.pipeline import CONFIG_UNAVAILABLE_WARNING
from teleguard.publishing import TOPIC_ACTION_CREATED, TOPIC_STATUS_CHANGED, TOPIC_THREAT_CREATED
from teleguard.scoring import ResilientScoreProvider


def _throttled(operation):
    return ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        operation,
    )


@pytest.fixture
def make_pipeline(threat_store, activity_store, audit_logger, publisher, fixed_rng, static_config):
    pipelines = []

    def _make(rng_value=0.9, snapshot=None, config_fail=False, audit=None, scorer=None):
        pipeline = ThreatPipeline(
            store=threat_store,
            scorer=scorer or ResilientScoreProvider(rng=fixed_rng(rng_value)),
            policy_engine=ResponsePolicyEngine(threat_store),
            config_provider=static_config(snapshot, fail=config_fail),
            audit_logger=audit if audit is not None else audit_logger,
            publisher=publisher,
            activity_store=activity_store,
            max_workers=2,
        )
        pipelines.append(pipeline)
        return pipeline

    yield _make
    for pipeline in pipelines:
        pipeline.shutdown()


class TestOutcomes:

    def test_invalid_event_rejected(self, make_pipeline, audit_logger, threat_store):
        result = make_pipeline().process({"record_type": "call", "id": "cdr_bad"})

        assert result.outcome == PipelineOutcome.REJECTED
        assert result.event_id == "cdr_bad"
        assert result.error["error"] == "INVALID_EVENT"
        assert result.retryable is False
        assert threat_store.list_threats() == []
        rejected = list(audit_logger.get_entries(event_type=AuditEventType.EVENT_REJECTED))
        assert rejected[0].event_id == "cdr_bad"

    def test_low_score_creates_no_threat(self, make_pipeline, benign_sms, threat_store, audit_logger):
        result = make_pipeline(rng_value=0.3).process(benign_sms)

        assert result.outcome == PipelineOutcome.BELOW_THRESHOLD
        assert result.score.score == pytest.approx(3.0)
        assert result.threat is None
        assert threat_store.list_threats() == []
        entry = list(audit_logger.get_entries(event_type=AuditEventType.SYSTEM_EVENT))[0]
        assert entry.metadata["event_description"] == "event_below_threshold"

    def test_critical_phishing_is_blocked(self, make_pipeline, phishing_sms, threat_store, publisher):
        result = make_pipeline().process(phishing_sms)

        assert result.outcome == PipelineOutcome.AUTO_RESPONDED
        assert result.threat.severity == Severity.CRITICAL
        assert result.threat.status == ThreatStatus.BLOCKED
        assert result.action.action_type == ActionType.BLOCK_PHONE
        assert result.action.automated is True
        assert threat_store.get_actions_for_threat(result.threat.id) == [result.action]
        assert len(publisher.events(TOPIC_THREAT_CREATED)) == 1
        assert len(publisher.events(TOPIC_ACTION_CREATED)) == 1
        assert publisher.events(TOPIC_STATUS_CHANGED)[0]["to_status"] == "blocked"

    def test_auto_response_is_fully_audited(self, make_pipeline, phishing_sms, audit_logger):
        result = make_pipeline().process(phishing_sms)

        history = audit_logger.get_threat_history(result.threat.id)
        assert [e.event_type for e in history] == [
            AuditEventType.THREAT_CREATED,
            AuditEventType.POLICY_EVALUATION,
            AuditEventType.AUTOMATED_ACTION,
            AuditEventType.STATUS_TRANSITION,
        ]
        assert audit_logger.verify_integrity() is True

    def test_threat_left_analyzing_without_matching_rule(self, make_pipeline, short_call, threat_store):
        pipeline = make_pipeline(snapshot=SystemConfigSnapshot(auto_block_fraud=False))

        result = pipeline.process(short_call)

        assert result.outcome == PipelineOutcome.THREAT_CREATED
        assert result.threat.threat_type == ThreatType.CALL_FRAUD
        assert result.threat.severity == Severity.HIGH
        assert result.evaluation.skipped_reason == SkipReason.NO_MATCH
        assert threat_store.get_threat(result.threat.id).status == ThreatStatus.ANALYZING
        assert threat_store.get_actions_for_threat(result.threat.id) == []

    def test_config_unavailable_takes_no_action(self, make_pipeline, phishing_sms, threat_store):
        result = make_pipeline(config_fail=True).process(phishing_sms)

        assert result.outcome == PipelineOutcome.THREAT_CREATED
        assert result.warnings == [CONFIG_UNAVAILABLE_WARNING]
        assert result.evaluation.skipped_reason == SkipReason.CONFIG_UNAVAILABLE
        assert result.threat.severity == Severity.CRITICAL
        assert threat_store.get_actions_for_threat(result.threat.id) == []

    def test_threat_write_failure_is_retryable(self, make_pipeline, phishing_sms, threat_store, monkeypatch):
        def fail(threat):
            raise IOError("table unavailable")

        monkeypatch.setattr(threat_store, "create_threat", fail)

        result = make_pipeline().process(phishing_sms)

        assert result.outcome == PipelineOutcome.RETRYABLE_ERROR
        assert result.retryable is True
        assert result.error["error"] == "PERSISTENCE_CONFLICT"

    def test_response_write_failure_leaves_threat_analyzing(
        self, make_pipeline, phishing_sms, threat_store, monkeypatch
    ):
        def fail(threat_id, status):
            raise IOError("write failed")

        monkeypatch.setattr(threat_store, "_write_status", fail)

        result = make_pipeline().process(phishing_sms)

        assert result.outcome == PipelineOutcome.RETRYABLE_ERROR
        assert result.threat.status == ThreatStatus.ANALYZING
        assert threat_store.get_actions_for_threat(result.threat.id) == []

    def test_throttled_threat_read_is_retryable(
        self, make_pipeline, phishing_sms, threat_store, monkeypatch
    ):
        def throttled(threat_id):
            raise _throttled("GetItem")

        monkeypatch.setattr(threat_store, "get_threat", throttled)

        result = make_pipeline().process(phishing_sms)

        assert result.outcome == PipelineOutcome.RETRYABLE_ERROR
        assert result.error["error"] == "PERSISTENCE_CONFLICT"
        assert result.threat.status == ThreatStatus.ANALYZING
        assert len(threat_store.list_threats()) == 1

    def test_audit_failure_does_not_fail_event(self, make_pipeline, phishing_sms):
        audit = MagicMock()
        audit.log_threat_created.side_effect = IOError("disk full")

        result = make_pipeline(audit=audit).process(phishing_sms)

        assert result.outcome == PipelineOutcome.AUTO_RESPONDED
        audit.log_automated_action.assert_called_once()

    def test_to_dict(self, make_pipeline, phishing_sms):
        data = make_pipeline().process(phishing_sms).to_dict()

        assert data["outcome"] == "auto_responded"
        assert data["event_id"] == "sms_test_001"
        assert data["threat"]["status"] == "blocked"
        assert data["retryable"] is False


class TestCancellation:

    def test_shut_down_pipeline_cancels(self, make_pipeline, phishing_sms, threat_store):
        pipeline = make_pipeline()
        pipeline.shutdown()

        result = pipeline.process(phishing_sms)

        assert result.outcome == PipelineOutcome.CANCELLED
        assert result.retryable is True
        assert threat_store.list_threats() == []

    def test_shutdown_during_scoring_persists_nothing(self, make_pipeline, phishing_sms, threat_store, fixed_rng):
        heuristic = ResilientScoreProvider(rng=fixed_rng(0.9))
        scorer = MagicMock()
        holder = {}

        def score(event, config):
            holder["pipeline"].shutdown(wait=False)
            return heuristic.score(event, config)

        scorer.score.side_effect = score
        pipeline = make_pipeline(scorer=scorer)
        holder["pipeline"] = pipeline

        result = pipeline.process(phishing_sms)

        assert result.outcome == PipelineOutcome.CANCELLED
        assert result.score is not None
        assert threat_store.list_threats() == []
        scorer.close.assert_called_once()

    def test_batch_after_shutdown(self, make_pipeline, phishing_sms, benign_sms):
        pipeline = make_pipeline()
        pipeline.shutdown()

        results = pipeline.process_batch([phishing_sms, benign_sms])

        assert [r.outcome for r in results] == [PipelineOutcome.CANCELLED] * 2
        assert [r.event_id for r in results] == ["sms_test_001", "sms_test_002"]


class TestBatch:

    def test_results_keep_input_order(self, make_pipeline, phishing_sms, normal_call, short_call):
        pipeline = make_pipeline(rng_value=0.3)

        results = pipeline.process_batch([
            phishing_sms,
            {"record_type": "message", "id": "sms_bad"},
            normal_call,
            short_call,
        ])

        assert [r.event_id for r in results] == ["sms_test_001", "sms_bad", "cdr_test_002", "cdr_test_001"]
        assert [r.outcome for r in results] == [
            PipelineOutcome.THREAT_CREATED,
            PipelineOutcome.REJECTED,
            PipelineOutcome.BELOW_THRESHOLD,
            PipelineOutcome.AUTO_RESPONDED,
        ]

    def test_each_event_gets_its_own_threat(self, make_pipeline, phishing_sms, threat_store):
        events = [phishing_sms.model_copy(update={"id": f"sms_{i}"}) for i in range(6)]

        results = make_pipeline().process_batch(events)

        assert all(r.outcome == PipelineOutcome.AUTO_RESPONDED for r in results)
        assert len({r.threat.id for r in results}) == 6
        assert len(threat_store.list_actions()) == 6


    def test_store_error_stays_with_its_event(
        self, make_pipeline, benign_sms, phishing_sms, threat_store, monkeypatch
    ):
        def throttled(threat_id, action):
            raise _throttled("TransactWriteItems")

        monkeypatch.setattr(threat_store, "record_automated_response", throttled)

        results = make_pipeline().process_batch([benign_sms, phishing_sms])

        assert [r.event_id for r in results] == ["sms_test_002", "sms_test_001"]
        assert [r.outcome for r in results] == [PipelineOutcome.RETRYABLE_ERROR] * 2
        assert all(r.error["error"] == "PERSISTENCE_CONFLICT" for r in results)
        threats = threat_store.list_threats()
        assert len(threats) == 2
        assert {t.status for t in threats} == {ThreatStatus.ANALYZING}

    def test_unexpected_failure_does_not_lose_batch(
        self, make_pipeline, benign_sms, phishing_sms, fixed_rng
    ):
        heuristic = ResilientScoreProvider(rng=fixed_rng(0.3))
        scorer = MagicMock()

        def score(event, config):
            if event.id == "sms_test_001":
                raise RuntimeError("scorer crashed")
            return heuristic.score(event, config)

        scorer.score.side_effect = score

        results = make_pipeline(scorer=scorer).process_batch([benign_sms, phishing_sms])

        assert results[0].outcome == PipelineOutcome.BELOW_THRESHOLD
        assert results[1].outcome == PipelineOutcome.RETRYABLE_ERROR
        assert results[1].event_id == "sms_test_001"
        assert results[1].retryable is True
        assert results[1].error["details"]["error_type"] == "RuntimeError"


class TestBehaviorSamples:

    def test_sample_is_oldest_first(self, make_pipeline, activity_store, make_activity, base_time):
        activity_store.add_activities([make_activity(i) for i in range(3)])
        activity_store.add_activities([make_activity(9, subject_id="someone_else")])

        sample = make_pipeline().build_behavior_sample("user_4412")

        assert isinstance(sample, BehaviorSample)
        assert [s.timestamp for s in sample.recent_activity] == [
            base_time + timedelta(minutes=i) for i in range(3)
        ]
        assert sample.recent_activity[0].location == "Nairobi"

    def test_busy_subject_scored_as_sim_swap(self, make_pipeline, activity_store, make_activity):
        activity_store.add_activities([make_activity(i) for i in range(51)])
        pipeline = make_pipeline(
            snapshot=SystemConfigSnapshot(auto_block_critical=False, sim_swap_manual=False)
        )

        result = pipeline.process(pipeline.build_behavior_sample("user_4412"))

        assert result.threat.threat_type == ThreatType.SIM_SWAP
        assert result.threat.source == "User: user_4412"
        assert result.action.action_type == ActionType.CREATE_CASE

    def test_requires_activity_store(self, threat_store, fixed_rng, static_config):
        pipeline = ThreatPipeline(
            store=threat_store,
            scorer=ResilientScoreProvider(rng=fixed_rng(0.5)),
            policy_engine=ResponsePolicyEngine(threat_store),
            config_provider=static_config(),
        )
        with pytest.raises(InvalidEventError):
            pipeline.build_behavior_sample("user_1")

    def test_empty_activity_store(self, make_pipeline):
        sample = make_pipeline().build_behavior_sample("nobody")
        assert sample.recent_activity == []
