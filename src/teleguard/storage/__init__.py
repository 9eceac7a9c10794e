"""Storage - one interface, in-memory and DynamoDB implementations."""

from teleguard.storage.base import ActivityStore, ThreatStore
from teleguard.storage.dynamodb import DynamoDBActivityStore, DynamoDBThreatStore
from teleguard.storage.factory import create_stores
from teleguard.storage.memory import InMemoryActivityStore, InMemoryThreatStore

__all__ = [
    "ThreatStore",
    "ActivityStore",
    "InMemoryThreatStore",
    "InMemoryActivityStore",
    "DynamoDBThreatStore",
    "DynamoDBActivityStore",
    "create_stores",
]
