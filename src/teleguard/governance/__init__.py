"""Governance - classification, response policy, operator actions and audit.

Components:
- ThreatClassifier: score -> severity, and the threat creation cutoff
- ResponsePolicyEngine: config-driven automated responses (no ML)
- OperatorActionHandler: analyst actions and status changes
- AuditLogger: hash-chained JSONL record of every decision
"""
