"""Unit tests for Audit Logger.

Tests that audit logs are append-only and that the hash chain detects
tampering.
"""

import json
from pathlib import Path

import pytest

from teleguard.data.schemas import Action, ActionType, Severity, Threat, ThreatStatus, ThreatType
from teleguard.governance.audit import AuditLogger, AuditLogIntegrityError
from teleguard.governance.schemas import AuditEntry, AuditEventType, PolicyEvaluation, SkipReason


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "audit"


@pytest.fixture
def logger(log_dir):
    return AuditLogger(log_dir=str(log_dir))


@pytest.fixture
def threat():
    return Threat(
        threat_type=ThreatType.SMS_PHISHING,
        source="+15550123",
        severity=Severity.CRITICAL,
        score=9.7,
        scoring_detail={"provider": "heuristic"},
    )


def _lines(log_dir):
    files = list(Path(log_dir).glob("*.jsonl"))
    assert len(files) == 1
    return files[0], files[0].read_text().splitlines()


class TestAuditLoggerInit:

    def test_creates_log_directory(self, tmp_path):
        new_dir = tmp_path / "nested" / "logs"
        AuditLogger(log_dir=str(new_dir))
        assert new_dir.is_dir()

    def test_no_file_until_first_write(self, logger, log_dir):
        assert list(Path(log_dir).glob("*.jsonl")) == []
        assert logger.get_entry_count() == 0


class TestLogMethods:

    def test_threat_created(self, logger, threat):
        entry = logger.log_threat_created(threat, policy_version="1.0.0", event_id="sms_1")

        assert entry.event_type == AuditEventType.THREAT_CREATED
        assert entry.threat_id == threat.id
        assert entry.event_id == "sms_1"
        assert entry.decided_by == "SYSTEM"
        assert entry.metadata["severity"] == "critical"
        assert entry.metadata["provider"] == "heuristic"

    def test_policy_evaluation(self, logger, threat):
        evaluation = PolicyEvaluation(
            threat_id=threat.id,
            policy_version="1.0.0",
            skipped_reason=SkipReason.CONFIG_UNAVAILABLE,
        )

        entry = logger.log_policy_evaluation(evaluation)

        assert entry.decided_by == "POLICY"
        assert entry.action is None
        assert entry.metadata["applied"] is False
        assert entry.metadata["skipped_reason"] == "config_unavailable"

    def test_automated_action(self, logger, threat):
        action = Action(threat_id=threat.id, action_type=ActionType.BLOCK_PHONE, automated=True)

        entry = logger.log_automated_action(action, threat, policy_version="1.0.0")

        assert entry.action == "block_phone"
        assert entry.action_id == action.id
        assert entry.metadata["status"] == ThreatStatus.BLOCKED.value

    def test_status_transition_by_analyst(self, logger):
        entry = logger.log_status_transition(
            "thr_1", ThreatStatus.BLOCKED, ThreatStatus.FALSE_POSITIVE,
            policy_version="1.0.0", analyst="alice", reason="known sender",
        )

        assert entry.decided_by == "ANALYST"
        assert entry.metadata == {
            "from_status": "blocked",
            "to_status": "false_positive",
            "reason": "known sender",
        }

    def test_event_rejected(self, logger):
        errors = [{"field": "timestamp", "message": "required"}]
        entry = logger.log_event_rejected("1.0.0", event_id="sms_9", errors=errors)

        assert entry.event_type == AuditEventType.EVENT_REJECTED
        assert entry.metadata["errors"] == errors

    def test_system_event(self, logger):
        entry = logger.log_system_event("service_started", "1.0.0", metadata={"backend": "memory"})

        assert entry.metadata == {"event_description": "service_started", "backend": "memory"}


class TestAppendOnly:

    def test_entries_are_appended(self, logger, log_dir):
        for i in range(3):
            logger.log_system_event(f"event_{i}", "1.0.0")

        _, lines = _lines(log_dir)
        assert len(lines) == 3
        assert logger.get_entry_count() == 3

    def test_entries_are_valid_json(self, logger, log_dir, threat):
        logger.log_threat_created(threat, "1.0.0")
        logger.log_anomaly_scan(record_count=100, anomaly_count=5, policy_version="1.0.0")

        _, lines = _lines(log_dir)
        for line in lines:
            AuditEntry.from_jsonl(line)
            assert "entry_hash" in json.loads(line)


class TestHashChain:

    def test_chain_links_entries(self, logger):
        first = logger.log_system_event("a", "1.0.0")
        second = logger.log_system_event("b", "1.0.0")

        assert first.previous_hash is None
        assert first.entry_hash is not None
        assert second.previous_hash == first.entry_hash

    def test_verify_integrity_passes(self, logger, threat):
        logger.log_threat_created(threat, "1.0.0")
        logger.log_system_event("b", "1.0.0")

        assert logger.verify_integrity() is True

    def test_verify_integrity_detects_tampering(self, logger, log_dir, threat):
        logger.log_threat_created(threat, "1.0.0")
        logger.log_system_event("b", "1.0.0")

        path, lines = _lines(log_dir)
        tampered = json.loads(lines[0])
        tampered["metadata"]["score"] = 1.0
        lines[0] = json.dumps(tampered)
        path.write_text("\n".join(lines) + "\n")

        with pytest.raises(AuditLogIntegrityError, match="line 1"):
            logger.verify_integrity()

    def test_verify_integrity_detects_removed_entry(self, logger, log_dir):
        for i in range(3):
            logger.log_system_event(f"event_{i}", "1.0.0")

        path, lines = _lines(log_dir)
        path.write_text("\n".join([lines[0], lines[2]]) + "\n")

        with pytest.raises(AuditLogIntegrityError, match="chain broken"):
            logger.verify_integrity()

    def test_restart_continues_chain(self, logger, log_dir):
        first = logger.log_system_event("before_restart", "1.0.0")

        restarted = AuditLogger(log_dir=str(log_dir))
        second = restarted.log_system_event("after_restart", "1.0.0")

        assert second.previous_hash == first.entry_hash
        assert restarted.verify_integrity() is True

    def test_no_hash_chain_when_disabled(self, log_dir):
        logger = AuditLogger(log_dir=str(log_dir), enable_hash_chain=False)
        entry = logger.log_system_event("a", "1.0.0")

        assert entry.entry_hash is None
        assert logger.verify_integrity() is True


class TestQueries:

    def test_get_entries_by_event_type(self, logger, threat):
        logger.log_threat_created(threat, "1.0.0")
        logger.log_system_event("a", "1.0.0")

        entries = list(logger.get_entries(event_type=AuditEventType.THREAT_CREATED))

        assert [e.threat_id for e in entries] == [threat.id]

    def test_threat_history_in_order(self, logger, threat):
        logger.log_threat_created(threat, "1.0.0")
        logger.log_system_event("unrelated", "1.0.0")
        logger.log_status_transition(
            threat.id, ThreatStatus.ANALYZING, ThreatStatus.RESOLVED, "1.0.0", analyst="bob"
        )

        history = logger.get_threat_history(threat.id)

        assert [e.event_type for e in history] == [
            AuditEventType.THREAT_CREATED,
            AuditEventType.STATUS_TRANSITION,
        ]

    def test_missing_date_yields_nothing(self, logger):
        assert list(logger.get_entries(date="1999-01-01")) == []
