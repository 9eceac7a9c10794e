"""Published events - the core's outputs to reporting consumers.

Topics:
- threat.created
- action.created
- threat.status_changed
- anomaly.detected
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

TOPIC_THREAT_CREATED = "threat.created"
TOPIC_ACTION_CREATED = "action.created"
TOPIC_STATUS_CHANGED = "threat.status_changed"
TOPIC_ANOMALY_DETECTED = "anomaly.detected"

TOPICS = (
    TOPIC_THREAT_CREATED,
    TOPIC_ACTION_CREATED,
    TOPIC_STATUS_CHANGED,
    TOPIC_ANOMALY_DETECTED,
)


class EventPublisher(ABC):
    """Sink for published events. Publishing never fails the caller."""

    @abstractmethod
    def publish(self, topic: str, payload: Dict[str, Any]) -> bool:
        """Publish a JSON-serializable payload. Returns True on success."""
        pass


class InMemoryEventPublisher(EventPublisher):
    """Keeps published events in a list (tests and local runs)."""

    def __init__(self):
        self._events: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def publish(self, topic: str, payload: Dict[str, Any]) -> bool:
        if topic not in TOPICS:
            raise ValueError(f"Unknown topic: {topic}")
        with self._lock:
            self._events.append((topic, payload))
        return True

    def events(self, topic: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [p for t, p in self._events if topic is None or t == topic]


class SNSEventPublisher(EventPublisher):
    """Publishes to one SNS topic; the event topic travels as a message attribute."""

    DEFAULT_REGION = "us-east-1"

    def __init__(
        self,
        topic_arn: Optional[str] = None,
        region: Optional[str] = None,
        sns_client: Optional[Any] = None,
    ):
        self.topic_arn = topic_arn or os.environ.get("TELEGUARD_SNS_TOPIC_ARN")
        if not self.topic_arn:
            raise ValueError("TELEGUARD_SNS_TOPIC_ARN required")
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        self.client = sns_client or boto3.client("sns", region_name=self.region)

    def publish(self, topic: str, payload: Dict[str, Any]) -> bool:
        if topic not in TOPICS:
            raise ValueError(f"Unknown topic: {topic}")
        try:
            self.client.publish(
                TopicArn=self.topic_arn,
                Message=json.dumps(payload, default=str),
                MessageAttributes={
                    "topic": {"DataType": "String", "StringValue": topic},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to publish {topic}: {e}")
            return False
        return True
