"""Policies module - automated response rules."""

from teleguard.governance.policies.engine import ResponsePolicyEngine

__all__ = ["ResponsePolicyEngine"]
