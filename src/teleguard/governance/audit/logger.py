"""Audit Logger - Append-only, hash-chained JSONL record of every decision."""

import hashlib
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from teleguard.common.constants import AuditConstants
from teleguard.data.schemas import Action, Threat, ThreatStatus
from teleguard.governance.schemas import AuditEntry, AuditEventType, PolicyEvaluation


class AuditLogIntegrityError(Exception):
    """Raised when audit log integrity check fails."""
    pass


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class AuditLogger:
    """Records threats, policy decisions and operator actions immutably."""

    DEFAULT_LOG_DIR = Path(__file__).parent.parent.parent.parent.parent / "logs" / "audit"

    def __init__(
        self,
        log_dir: Optional[str] = None,
        log_filename_pattern: str = AuditConstants.LOG_FILENAME_PATTERN,
        enable_hash_chain: bool = True,
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM,
    ):
        """Initialize audit logger.

        Args:
            log_dir: Directory for audit logs. Uses default if not provided.
            log_filename_pattern: Pattern for log filename. {date} is replaced.
            enable_hash_chain: Whether to enable hash chain integrity.
            hash_algorithm: Hash algorithm for integrity checks.
        """
        self.log_dir = Path(log_dir) if log_dir else self.DEFAULT_LOG_DIR
        self.log_filename_pattern = log_filename_pattern
        self.enable_hash_chain = enable_hash_chain
        self.hash_algorithm = hash_algorithm

        self._lock = threading.Lock()
        self._last_hash: Optional[str] = None

        self.log_dir.mkdir(parents=True, exist_ok=True)

        if self.enable_hash_chain:
            self._last_hash = self._get_last_hash_from_log()

    def _log_path(self, date: Optional[str] = None) -> Path:
        filename = self.log_filename_pattern.replace("{date}", date or _today())
        return self.log_dir / filename

    def _get_last_hash_from_log(self) -> Optional[str]:
        """Read the last hash from the current log file."""
        log_path = self._log_path()
        if not log_path.exists():
            return None

        last_hash = None
        try:
            with open(log_path, "r") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        last_hash = json.loads(line).get("entry_hash")
        except (json.JSONDecodeError, IOError):
            return None
        return last_hash

    def _compute_hash(self, content: str) -> str:
        hasher = hashlib.new(self.hash_algorithm)
        hasher.update(content.encode("utf-8"))
        return hasher.hexdigest()

    def _chain(self, entry: AuditEntry) -> AuditEntry:
        if not self.enable_hash_chain:
            return entry

        entry_dict = entry.model_dump(mode="json")
        entry_dict["previous_hash"] = self._last_hash
        entry_dict["entry_hash"] = None
        content_to_hash = json.dumps(entry_dict, sort_keys=True, default=str)
        entry_dict["entry_hash"] = self._compute_hash(content_to_hash)

        return AuditEntry.model_validate(entry_dict)

    def log_threat_created(
        self,
        threat: Threat,
        policy_version: str,
        event_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Log creation of a Threat."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.THREAT_CREATED,
            threat_id=threat.id,
            event_id=event_id,
            source=threat.source,
            decided_by="SYSTEM",
            policy_version=policy_version,
            metadata={
                "threat_type": threat.threat_type.value,
                "severity": threat.severity.value,
                "score": threat.score,
                "provider": threat.scoring_detail.get("provider"),
                **(metadata or {}),
            },
        ))

    def log_policy_evaluation(
        self,
        evaluation: PolicyEvaluation,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Log the outcome of a response policy evaluation."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.POLICY_EVALUATION,
            threat_id=evaluation.threat_id,
            action=evaluation.action_type.value if evaluation.action_type else None,
            decided_by="POLICY",
            policy_version=evaluation.policy_version,
            metadata={
                "matched_rule": evaluation.matched_rule,
                "applied": evaluation.applied,
                "skipped_reason": (
                    evaluation.skipped_reason.value if evaluation.skipped_reason else None
                ),
                **(metadata or {}),
            },
        ))

    def log_automated_action(
        self,
        action: Action,
        threat: Threat,
        policy_version: str,
    ) -> AuditEntry:
        """Log an automated action and the resulting block."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.AUTOMATED_ACTION,
            threat_id=threat.id,
            action_id=action.id,
            source=threat.source,
            action=action.action_type.value,
            decided_by="POLICY",
            policy_version=policy_version,
            metadata={
                "details": action.details,
                "status": ThreatStatus.BLOCKED.value,
            },
        ))

    def log_manual_action(self, action: Action, policy_version: str) -> AuditEntry:
        """Log an action recorded by an analyst."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.MANUAL_ACTION,
            threat_id=action.threat_id,
            action_id=action.id,
            action=action.action_type.value,
            decided_by="ANALYST",
            analyst=action.analyst,
            policy_version=policy_version,
            metadata={"details": action.details},
        ))

    def log_status_transition(
        self,
        threat_id: str,
        from_status: ThreatStatus,
        to_status: ThreatStatus,
        policy_version: str,
        analyst: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> AuditEntry:
        """Log a threat status change."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.STATUS_TRANSITION,
            threat_id=threat_id,
            decided_by="ANALYST" if analyst else "POLICY",
            analyst=analyst,
            policy_version=policy_version,
            metadata={
                "from_status": from_status.value,
                "to_status": to_status.value,
                "reason": reason,
            },
        ))

    def log_event_rejected(
        self,
        policy_version: str,
        event_id: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> AuditEntry:
        """Log an event that failed validation."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.EVENT_REJECTED,
            event_id=event_id,
            decided_by="SYSTEM",
            policy_version=policy_version,
            metadata={"errors": errors or []},
        ))

    def log_anomaly_scan(
        self,
        record_count: int,
        anomaly_count: int,
        policy_version: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Log a completed outlier scan."""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.ANOMALY_SCAN,
            decided_by="SYSTEM",
            policy_version=policy_version,
            metadata={
                "record_count": record_count,
                "anomaly_count": anomaly_count,
                **(metadata or {}),
            },
        ))

    def log_system_event(
        self,
        event_description: str,
        policy_version: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Log a system event (startup, shutdown, config change, etc.)"""
        return self._append_entry(AuditEntry(
            event_type=AuditEventType.SYSTEM_EVENT,
            decided_by="SYSTEM",
            policy_version=policy_version,
            metadata={"event_description": event_description, **(metadata or {})},
        ))

    def _append_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append entry to log file (thread-safe)."""
        with self._lock:
            entry = self._chain(entry)

            with open(self._log_path(), "a") as f:
                f.write(entry.to_jsonl() + "\n")

            if self.enable_hash_chain:
                self._last_hash = entry.entry_hash
            return entry

    def get_entries(
        self,
        date: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        threat_id: Optional[str] = None,
    ) -> Generator[AuditEntry, None, None]:
        """Retrieve audit entries with optional filtering."""
        log_path = self._log_path(date)
        if not log_path.exists():
            return

        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = AuditEntry.from_jsonl(line)
                except (json.JSONDecodeError, ValueError):
                    continue

                if event_type and entry.event_type != event_type:
                    continue
                if threat_id and entry.threat_id != threat_id:
                    continue
                yield entry

    def get_threat_history(self, threat_id: str) -> List[AuditEntry]:
        """Get all entries related to a threat, across every log file."""
        entries = []
        for log_file in self.get_log_files():
            with open(log_file, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = AuditEntry.from_jsonl(line)
                    except (json.JSONDecodeError, ValueError):
                        continue
                    if entry.threat_id == threat_id:
                        entries.append(entry)

        return sorted(entries, key=lambda e: e.timestamp)

    def verify_integrity(self, date: Optional[str] = None) -> bool:
        """Verify hash chain integrity of log file.

        Raises:
            AuditLogIntegrityError: On a broken chain, altered entry or bad JSON
        """
        if not self.enable_hash_chain:
            return True

        log_path = self._log_path(date)
        if not log_path.exists():
            return True

        previous_hash = None
        with open(log_path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue

                try:
                    entry_dict = json.loads(line)
                except json.JSONDecodeError as e:
                    raise AuditLogIntegrityError(f"Malformed JSON at line {line_number}: {e}")

                if entry_dict.get("previous_hash") != previous_hash:
                    raise AuditLogIntegrityError(
                        f"Hash chain broken at line {line_number}. "
                        f"Expected previous_hash={previous_hash}, "
                        f"got {entry_dict.get('previous_hash')}"
                    )

                stored_hash = entry_dict.get("entry_hash")
                entry_dict["entry_hash"] = None
                computed_hash = self._compute_hash(
                    json.dumps(entry_dict, sort_keys=True, default=str)
                )
                if computed_hash != stored_hash:
                    raise AuditLogIntegrityError(
                        f"Entry hash mismatch at line {line_number}. "
                        f"Entry may have been tampered with."
                    )
                previous_hash = stored_hash

        return True

    def get_log_files(self) -> List[Path]:
        """Get list of all audit log files."""
        return sorted(self.log_dir.glob("*.jsonl"))

    def get_entry_count(self, date: Optional[str] = None) -> int:
        """Get count of entries in log file."""
        log_path = self._log_path(date)
        if not log_path.exists():
            return 0
        with open(log_path, "r") as f:
            return sum(1 for line in f if line.strip())
