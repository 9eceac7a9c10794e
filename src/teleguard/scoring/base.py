"""Score provider contract."""

from abc import ABC, abstractmethod
from typing import Optional

from teleguard.data.schemas import ActivityPattern, Event, ScoreResult, SystemConfigSnapshot


class ScoreProvider(ABC):
    """Abstract base class for score providers.

    Implementations must not mutate the event.
    """

    name: str = "base"

    @abstractmethod
    def score(
        self,
        event: Event,
        config: SystemConfigSnapshot,
        context: Optional[ActivityPattern] = None,
    ) -> ScoreResult:
        """Score a single event.

        Args:
            event: Validated event
            config: System config snapshot for this run (sensitivity hints)
            context: Activity summary of the subject, for behavior events

        Returns:
            ScoreResult for the event
        """
        pass

    def close(self) -> None:
        """Release resources held by the provider."""
