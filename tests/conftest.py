"""Shared fixtures for TeleGuard tests."""

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from teleguard.common.exceptions import ConfigUnavailableError
from teleguard.data.schemas import (
    ActivityRecord,
    CallRecord,
    MessageRecord,
    SystemConfigSnapshot,
)
from teleguard.governance.audit import AuditLogger
from teleguard.publishing import InMemoryEventPublisher
from teleguard.storage import InMemoryActivityStore, InMemoryThreatStore


class FixedRandom(random.Random):
    """random.Random whose random() always returns the same value."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class StaticConfigProvider:
    """Config provider returning one fixed snapshot, or failing on demand."""

    def __init__(self, snapshot: Optional[SystemConfigSnapshot] = None, fail: bool = False):
        self._snapshot = snapshot or SystemConfigSnapshot()
        self.fail = fail
        self.calls = 0

    def snapshot(self) -> SystemConfigSnapshot:
        self.calls += 1
        if self.fail:
            raise ConfigUnavailableError("config store unreachable")
        return self._snapshot


BASE_TIME = datetime(2026, 1, 25, 14, 30, 5, tzinfo=timezone.utc)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def fixed_rng():
    """Factory for a deterministic rng."""
    return FixedRandom


@pytest.fixture
def static_config():
    """Factory for a config provider with a fixed snapshot."""
    return StaticConfigProvider


@pytest.fixture
def phishing_sms() -> MessageRecord:
    return MessageRecord(
        id="sms_test_001",
        from_addr="+15550123",
        to_addr="+15550456",
        body="URGENT click here to verify your account",
        timestamp=BASE_TIME,
    )


@pytest.fixture
def benign_sms() -> MessageRecord:
    return MessageRecord(
        id="sms_test_002",
        from_addr="+15550777",
        to_addr="+15550456",
        body="See you at dinner tonight",
        timestamp=BASE_TIME,
    )


@pytest.fixture
def short_call() -> CallRecord:
    return CallRecord(
        id="cdr_test_001",
        from_addr="+15550100",
        to_addr="+15550199",
        duration_seconds=3,
        timestamp=BASE_TIME,
    )


@pytest.fixture
def normal_call() -> CallRecord:
    return CallRecord(
        id="cdr_test_002",
        from_addr="+15550101",
        to_addr="+15550199",
        duration_seconds=120,
        timestamp=BASE_TIME,
    )


@pytest.fixture
def threat_store() -> InMemoryThreatStore:
    return InMemoryThreatStore()


@pytest.fixture
def activity_store() -> InMemoryActivityStore:
    return InMemoryActivityStore()


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def audit_logger(tmp_path) -> AuditLogger:
    return AuditLogger(log_dir=str(tmp_path / "audit"))


@pytest.fixture
def make_activity():
    """Factory for ActivityRecord with sensible defaults."""

    def _make(index: int = 0, **overrides) -> ActivityRecord:
        fields = dict(
            record_id=f"act_{index:04d}",
            subject_id="user_4412",
            timestamp=BASE_TIME + timedelta(minutes=index),
            activity_type="call",
            direction="out",
            peer_address=f"+1555{index:06d}",
            duration_seconds=60,
            location="Nairobi",
        )
        fields.update(overrides)
        return ActivityRecord(**fields)

    return _make
