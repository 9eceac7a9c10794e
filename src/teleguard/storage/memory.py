"""In-memory stores - single-process deployments and tests.

The action + status pair is serialized per threat with a dedicated lock;
distinct threats never contend.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from teleguard.common.constants import DataConstants
from teleguard.common.exceptions import PersistenceConflictError, ThreatNotFoundError
from teleguard.data.schemas import (
    Action,
    ActivityRecord,
    Severity,
    Threat,
    ThreatStatus,
    ThreatType,
)
from teleguard.storage.base import ActivityStore, ThreatStore

logger = logging.getLogger(__name__)


def _in_window(ts: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and ts < start:
        return False
    if end is not None and ts > end:
        return False
    return True


class InMemoryThreatStore(ThreatStore):
    """Dict-backed ThreatStore. Returned models are copies."""

    def __init__(self):
        self._threats: Dict[str, Threat] = {}
        self._actions: List[Action] = []
        self._config: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._threat_locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, threat_id: str) -> threading.Lock:
        with self._lock:
            lock = self._threat_locks.get(threat_id)
            if lock is None:
                lock = self._threat_locks[threat_id] = threading.Lock()
            return lock

    def _require(self, threat_id: str) -> Threat:
        threat = self._threats.get(threat_id)
        if threat is None:
            raise ThreatNotFoundError(threat_id)
        return threat

    def create_threat(self, threat: Threat) -> Threat:
        with self._lock:
            if threat.id in self._threats:
                raise ValueError(f"Threat already exists: {threat.id}")
            self._threats[threat.id] = threat.model_copy(deep=True)
        return threat.model_copy(deep=True)

    def get_threat(self, threat_id: str) -> Optional[Threat]:
        with self._lock:
            threat = self._threats.get(threat_id)
            return threat.model_copy(deep=True) if threat else None

    def list_threats(
        self,
        limit: int = DataConstants.DEFAULT_QUERY_LIMIT,
        offset: int = 0,
        severity: Optional[Severity] = None,
        threat_type: Optional[ThreatType] = None,
        status: Optional[ThreatStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Threat]:
        with self._lock:
            threats = [
                t for t in self._threats.values()
                if (severity is None or t.severity == severity)
                and (threat_type is None or t.threat_type == threat_type)
                and (status is None or t.status == status)
                and _in_window(t.created_at, start, end)
            ]
        threats.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in threats[offset:offset + limit]]

    def update_threat_status(
        self,
        threat_id: str,
        status: ThreatStatus,
        expected_status: Optional[ThreatStatus] = None,
    ) -> Optional[Threat]:
        with self._lock_for(threat_id):
            with self._lock:
                threat = self._require(threat_id)
                if expected_status is not None and threat.status != expected_status:
                    return None
            self._write_status(threat_id, status)
            return self.get_threat(threat_id)

    def create_action(self, action: Action) -> Action:
        with self._lock:
            self._actions.append(action)
        return action

    def get_actions_for_threat(self, threat_id: str) -> List[Action]:
        with self._lock:
            return [a for a in self._actions if a.threat_id == threat_id]

    def list_actions(self, limit: int = DataConstants.DEFAULT_ACTION_LIMIT) -> List[Action]:
        with self._lock:
            actions = list(self._actions)
        actions.sort(key=lambda a: a.created_at, reverse=True)
        return actions[:limit]

    def record_automated_response(self, threat_id: str, action: Action) -> bool:
        # Held across both writes: readers never see the action without the block
        with self._lock_for(threat_id), self._lock:
            threat = self._require(threat_id)
            if threat.status != ThreatStatus.ANALYZING:
                return False
            self._actions.append(action)

            try:
                self._write_status(threat_id, ThreatStatus.BLOCKED)
            except Exception as e:
                # Compensate: the action must not outlive a failed status write
                self._actions = [a for a in self._actions if a.id != action.id]
                logger.error(f"Automated response rolled back for {threat_id}: {e}")
                raise PersistenceConflictError(
                    "Failed to record automated response",
                    threat_id=threat_id,
                    details={"action_type": action.action_type.value},
                ) from e
            return True

    def _write_status(self, threat_id: str, status: ThreatStatus) -> None:
        with self._lock:
            self._require(threat_id).status = status

    def get_config_value(self, key: str) -> Optional[str]:
        with self._lock:
            return self._config.get(key)

    def set_config_value(self, key: str, value: str) -> None:
        with self._lock:
            self._config[key] = value


class InMemoryActivityStore(ActivityStore):
    """List-backed ActivityStore."""

    def __init__(self, records: Optional[Iterable[ActivityRecord]] = None):
        self._records: List[ActivityRecord] = []
        self._lock = threading.Lock()
        if records:
            self.add_activities(records)

    def add_activities(self, records: Iterable[ActivityRecord]) -> int:
        records = list(records)
        with self._lock:
            self._records.extend(records)
        return len(records)

    def get_activities(
        self,
        subject_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ActivityRecord]:
        with self._lock:
            records = [
                r for r in self._records
                if (subject_id is None or r.subject_id == subject_id)
                and _in_window(r.timestamp, start, end)
            ]
        # Stable sort keeps insertion order among equal timestamps
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records if limit is None else records[:limit]
