"""Store selection - chosen once at startup from settings."""

import logging
from typing import Tuple

from teleguard.common.config.settings import Config, StorageBackend
from teleguard.storage.base import ActivityStore, ThreatStore
from teleguard.storage.dynamodb import DynamoDBActivityStore, DynamoDBThreatStore
from teleguard.storage.memory import InMemoryActivityStore, InMemoryThreatStore

logger = logging.getLogger(__name__)


def create_stores(config: Config) -> Tuple[ThreatStore, ActivityStore]:
    """Build the threat and activity stores for the configured backend."""
    if config.storage_backend == StorageBackend.DYNAMODB:
        threat_store = DynamoDBThreatStore(
            table_name=config.dynamodb_threats_table, region=config.aws_region
        )
        if config.dynamodb_activity_table:
            activity_store: ActivityStore = DynamoDBActivityStore(
                table_name=config.dynamodb_activity_table, region=config.aws_region
            )
        else:
            logger.warning("No activity table configured; using in-memory activity store")
            activity_store = InMemoryActivityStore()
        return threat_store, activity_store

    return InMemoryThreatStore(), InMemoryActivityStore()
