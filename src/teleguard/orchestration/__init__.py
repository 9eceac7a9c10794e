"""Orchestration - the threat scoring and response pipeline."""

from teleguard.orchestration.pipeline import ThreatPipeline
from teleguard.orchestration.results import PipelineOutcome, PipelineResult

__all__ = ["ThreatPipeline", "PipelineOutcome", "PipelineResult"]
