"""Storage interfaces for threats, actions, config values and activity."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from teleguard.common.constants import DataConstants
from teleguard.data.schemas import (
    Action,
    ActivityRecord,
    Severity,
    Threat,
    ThreatStatus,
    ThreatType,
)


class ThreatStore(ABC):
    """Threat / Action / Config store.

    Threats are never deleted; only their status changes. Actions are
    immutable. record_automated_response() is the only path that writes
    an Action and a status change together.
    """

    @abstractmethod
    def create_threat(self, threat: Threat) -> Threat:
        pass

    @abstractmethod
    def get_threat(self, threat_id: str) -> Optional[Threat]:
        pass

    @abstractmethod
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
        """Threats matching every given filter, newest first."""
        pass

    @abstractmethod
    def update_threat_status(
        self,
        threat_id: str,
        status: ThreatStatus,
        expected_status: Optional[ThreatStatus] = None,
    ) -> Optional[Threat]:
        """Set a threat's status.

        Returns:
            The updated threat, or None when `expected_status` was given
            and did not match the stored status

        Raises:
            ThreatNotFoundError: If the threat does not exist
        """
        pass

    @abstractmethod
    def create_action(self, action: Action) -> Action:
        pass

    @abstractmethod
    def get_actions_for_threat(self, threat_id: str) -> List[Action]:
        pass

    @abstractmethod
    def list_actions(self, limit: int = DataConstants.DEFAULT_ACTION_LIMIT) -> List[Action]:
        """Most recent actions first."""
        pass

    @abstractmethod
    def record_automated_response(self, threat_id: str, action: Action) -> bool:
        """Create `action` and move the threat from analyzing to blocked, atomically.

        Returns:
            True if both writes happened, False if the threat was no longer
            analyzing (nothing written)

        Raises:
            ThreatNotFoundError: If the threat does not exist
            PersistenceConflictError: If the pair could not be written; the
                threat is left analyzing with no action
        """
        pass

    @abstractmethod
    def get_config_value(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_config_value(self, key: str, value: str) -> None:
        pass

    def health_check(self) -> bool:
        return True


class ActivityStore(ABC):
    """Read access to historical subscriber activity."""

    @abstractmethod
    def get_activities(
        self,
        subject_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ActivityRecord]:
        """Activity records, newest first, optionally filtered by subject and window."""
        pass

    @abstractmethod
    def add_activities(self, records: Iterable[ActivityRecord]) -> int:
        """Append records; returns how many were written."""
        pass

    def health_check(self) -> bool:
        return True
