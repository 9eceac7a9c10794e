"""System config snapshot - the operator-tunable flags read once per run."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class SystemConfigSnapshot(BaseModel):
    """Consistent view of system flags for a single pipeline run."""

    model_config = ConfigDict(frozen=True)

    auto_block_critical: bool = True
    auto_block_fraud: bool = True
    sim_swap_manual: bool = False
    sms_sensitivity: int = Field(default=80, ge=0, le=100)
    call_sensitivity: int = Field(default=60, ge=0, le=100)
    fraud_sensitivity: int = Field(default=85, ge=0, le=100)
    force_fallback_scoring: bool = False

    def sensitivity_hints(self) -> Dict[str, Any]:
        """Hints forwarded to the score provider."""
        return {
            "sms": self.sms_sensitivity,
            "call": self.call_sensitivity,
            "fraud": self.fraud_sensitivity,
        }
