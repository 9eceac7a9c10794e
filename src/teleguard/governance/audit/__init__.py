"""Audit trail - hash-chained JSONL log."""

from teleguard.governance.audit.logger import AuditLogger, AuditLogIntegrityError

__all__ = ["AuditLogger", "AuditLogIntegrityError"]
