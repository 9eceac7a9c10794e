"""Resilient score provider - picks inference or heuristic for every call.

Selection order:
1. force_fallback_scoring kill switch in the config snapshot -> heuristic
2. no primary provider configured -> heuristic
3. sampling says skip (rng.random() >= sample_rate) -> heuristic
4. primary raises TransientScoringError -> heuristic (logged, not raised)
"""

import logging
import random
from typing import Any, Optional

from teleguard.analytics.patterns import summarize_activity
from teleguard.common.config.settings import Config
from teleguard.common.constants import DataConstants, ScoringConstants
from teleguard.common.exceptions import TransientScoringError
from teleguard.data.schemas import (
    ActivityPattern,
    BehaviorSample,
    Event,
    ScoreResult,
    SystemConfigSnapshot,
)
from teleguard.scoring.base import ScoreProvider
from teleguard.scoring.heuristic import HeuristicScoreProvider
from teleguard.scoring.inference import InferenceScoreProvider

logger = logging.getLogger(__name__)


class ResilientScoreProvider(ScoreProvider):
    """Always returns a ScoreResult; never raises scoring failures."""

    name = "resilient"

    def __init__(
        self,
        primary: Optional[ScoreProvider] = None,
        fallback: Optional[ScoreProvider] = None,
        sample_rate: float = 1.0,
        rng: Optional[random.Random] = None,
        activity_store: Optional[Any] = None,
    ):
        """Initialize the selector.

        Args:
            primary: External inference provider (None disables it)
            fallback: Local heuristic provider
            sample_rate: Fraction of calls routed to the primary, in [0, 1]
            rng: Randomness source for sampling
            activity_store: Source of behavior context for behavior events
        """
        if not 0.0 <= sample_rate <= 1.0:
            raise ValueError("sample_rate must be within [0, 1]")
        self._rng = rng or random.Random()
        self.primary = primary
        self.fallback = fallback or HeuristicScoreProvider(rng=self._rng)
        self.sample_rate = sample_rate
        self.activity_store = activity_store

    @classmethod
    def from_config(
        cls,
        config: Config,
        rng: Optional[random.Random] = None,
        activity_store: Optional[Any] = None,
    ) -> "ResilientScoreProvider":
        """Build the selector from static settings."""
        primary = None
        if config.inference_configured:
            primary = InferenceScoreProvider(
                url=config.inference_url,
                api_key=config.inference_api_key,
                timeout=(
                    min(
                        config.inference_timeout_seconds,
                        ScoringConstants.INFERENCE_CONNECT_TIMEOUT_SECONDS,
                    ),
                    config.inference_timeout_seconds,
                ),
            )
        return cls(
            primary=primary,
            sample_rate=config.inference_sample_rate,
            rng=rng,
            activity_store=activity_store,
        )

    def score(
        self,
        event: Event,
        config: SystemConfigSnapshot,
        context: Optional[ActivityPattern] = None,
    ) -> ScoreResult:
        reason = self._fallback_reason(config)
        if reason is None:
            if context is None and isinstance(event, BehaviorSample):
                context = self._behavior_context(event)
            try:
                return self.primary.score(event, config, context)
            except TransientScoringError as e:
                logger.warning(
                    f"Inference scoring failed, using heuristic: {e.message}",
                    extra={"event_type": event.record_type, "details": e.details},
                )

        elif reason != "sampled_out":
            logger.debug(f"Heuristic scoring: {reason}", extra={"event_type": event.record_type})

        return self.fallback.score(event, config, context)

    def _fallback_reason(self, config: SystemConfigSnapshot) -> Optional[str]:
        if config.force_fallback_scoring:
            return "forced_by_config"
        if self.primary is None:
            return "inference_disabled"
        if self._rng.random() >= self.sample_rate:
            return "sampled_out"
        return None

    def _behavior_context(self, event: BehaviorSample) -> Optional[ActivityPattern]:
        if self.activity_store is None:
            return None
        try:
            records = self.activity_store.get_activities(
                subject_id=event.subject_id, limit=DataConstants.ACTIVITY_SCAN_LIMIT
            )
        except Exception as e:
            logger.warning(f"Could not load behavior context for {event.subject_id}: {e}")
            return None
        if not records:
            return None
        return summarize_activity(records, subject_id=event.subject_id)

    def close(self) -> None:
        if self.primary is not None:
            self.primary.close()
        self.fallback.close()
