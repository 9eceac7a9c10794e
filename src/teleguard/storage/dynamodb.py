"""DynamoDB stores for threats, actions, config values and activity.

Threat table (single-table layout):
    THREAT  pk=THREAT#<id>  sk=THREAT   gsi1=(THREATS, created_at)
    ACTION  pk=ACTION#<id>  sk=ACTION   gsi1=(ACTIONS, created_at)  gsi2=(THREAT#<threat_id>, created_at)
    CONFIG  pk=CONFIG#<key> sk=CONFIG

Activity table:
    pk=SUBJECT#<subject_id>  sk=TS#<timestamp>#<record_id>  gsi1=(ACTIVITY, timestamp)

The automated response is one TransactWriteItems call: Put the action and
Update the threat conditioned on status = analyzing.
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from teleguard.common.constants import DataConstants
from teleguard.common.exceptions import PersistenceConflictError, ThreatNotFoundError
from teleguard.data.schemas import (
    Action,
    ActivityRecord,
    Severity,
    Threat,
    ThreatStatus,
    ThreatType,
)
from teleguard.storage.base import ActivityStore, ThreatStore

logger = logging.getLogger(__name__)

GSI1 = "gsi1_pk-gsi1_sk-index"
GSI2 = "gsi2_pk-gsi2_sk-index"
KEY_FIELDS = ("pk", "sk", "entity_type", "gsi1_pk", "gsi1_sk", "gsi2_pk", "gsi2_sk", "updated_at")
MAX_TIMESTAMP = "9999-12-31T23:59:59"


def to_dynamo(value: Any) -> Any:
    """Convert floats to Decimal, recursively. DynamoDB rejects floats."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Convert Decimal back to int or float, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


def _strip_keys(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: from_dynamo(v) for k, v in item.items() if k not in KEY_FIELDS}


def _iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _time_condition(base, start: Optional[datetime], end: Optional[datetime], field: str = "gsi1_sk"):
    if start is not None and end is not None:
        return base & Key(field).between(_iso(start), _iso(end))
    if start is not None:
        return base & Key(field).gte(_iso(start))
    if end is not None:
        return base & Key(field).lte(_iso(end))
    return base


class DynamoDBThreatStore(ThreatStore):
    """ThreatStore backed by a single DynamoDB table."""

    DEFAULT_REGION = "us-east-1"

    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
    ):
        self.table_name = table_name or os.environ.get("TELEGUARD_DYNAMODB_THREATS_TABLE")
        if not self.table_name:
            raise ValueError("TELEGUARD_DYNAMODB_THREATS_TABLE required")

        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)

        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.dynamodb = session.resource("dynamodb", region_name=self.region)
            self.client = session.client("dynamodb", region_name=self.region)
        else:
            self.dynamodb = boto3.resource("dynamodb", region_name=self.region)
            self.client = boto3.client("dynamodb", region_name=self.region)

        self.table = self.dynamodb.Table(self.table_name)
        self._serializer = TypeSerializer()
        logger.info(f"DynamoDB threat store initialized: {self.table_name} ({self.region})")

    # ========== THREATS ==========

    def _threat_item(self, threat: Threat) -> Dict[str, Any]:
        data = threat.model_dump(mode="json")
        return to_dynamo({
            "pk": f"THREAT#{threat.id}",
            "sk": "THREAT",
            "entity_type": "THREAT",
            "gsi1_pk": "THREATS",
            "gsi1_sk": _iso(threat.created_at),
            **data,
        })

    def create_threat(self, threat: Threat) -> Threat:
        try:
            self.table.put_item(
                Item=self._threat_item(threat),
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as e:
            logger.error(f"create_threat failed: {e}")
            raise
        return threat

    def get_threat(self, threat_id: str) -> Optional[Threat]:
        resp = self.table.get_item(Key={"pk": f"THREAT#{threat_id}", "sk": "THREAT"})
        item = resp.get("Item")
        return Threat.model_validate(_strip_keys(item)) if item else None

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
        filters = []
        if severity is not None:
            filters.append(Attr("severity").eq(Severity(severity).value))
        if threat_type is not None:
            filters.append(Attr("threat_type").eq(ThreatType(threat_type).value))
        if status is not None:
            filters.append(Attr("status").eq(ThreatStatus(status).value))

        query: Dict[str, Any] = {
            "IndexName": GSI1,
            "KeyConditionExpression": _time_condition(Key("gsi1_pk").eq("THREATS"), start, end),
            "ScanIndexForward": False,
        }
        if filters:
            expr = filters[0]
            for f in filters[1:]:
                expr = expr & f
            query["FilterExpression"] = expr

        items = self._collect(query, offset + limit)
        return [Threat.model_validate(_strip_keys(i)) for i in items[offset:offset + limit]]

    def update_threat_status(
        self,
        threat_id: str,
        status: ThreatStatus,
        expected_status: Optional[ThreatStatus] = None,
    ) -> Optional[Threat]:
        condition = "attribute_exists(pk)"
        values: Dict[str, Any] = {
            ":status": ThreatStatus(status).value,
            ":updated": datetime.now(timezone.utc).isoformat(),
        }
        if expected_status is not None:
            condition += " AND #status = :expected"
            values[":expected"] = ThreatStatus(expected_status).value

        try:
            resp = self.table.update_item(
                Key={"pk": f"THREAT#{threat_id}", "sk": "THREAT"},
                UpdateExpression="SET #status = :status, updated_at = :updated",
                ConditionExpression=condition,
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                logger.error(f"update_threat_status failed: {e}")
                raise
            if self.get_threat(threat_id) is None:
                raise ThreatNotFoundError(threat_id)
            return None

        return Threat.model_validate(_strip_keys(resp["Attributes"]))

    # ========== ACTIONS ==========

    def _action_item(self, action: Action) -> Dict[str, Any]:
        item = {
            "pk": f"ACTION#{action.id}",
            "sk": "ACTION",
            "entity_type": "ACTION",
            "gsi1_pk": "ACTIONS",
            "gsi1_sk": _iso(action.created_at),
            **action.model_dump(mode="json"),
        }
        if action.threat_id:
            item["gsi2_pk"] = f"THREAT#{action.threat_id}"
            item["gsi2_sk"] = _iso(action.created_at)
        # Null attributes are dropped rather than stored
        return to_dynamo({k: v for k, v in item.items() if v is not None})

    def create_action(self, action: Action) -> Action:
        try:
            self.table.put_item(Item=self._action_item(action))
        except ClientError as e:
            logger.error(f"create_action failed: {e}")
            raise
        return action

    def get_actions_for_threat(self, threat_id: str) -> List[Action]:
        items = self._collect({
            "IndexName": GSI2,
            "KeyConditionExpression": Key("gsi2_pk").eq(f"THREAT#{threat_id}"),
            "ScanIndexForward": True,
        })
        return [Action.model_validate(_strip_keys(i)) for i in items]

    def list_actions(self, limit: int = DataConstants.DEFAULT_ACTION_LIMIT) -> List[Action]:
        items = self._collect({
            "IndexName": GSI1,
            "KeyConditionExpression": Key("gsi1_pk").eq("ACTIONS"),
            "ScanIndexForward": False,
        }, limit)
        return [Action.model_validate(_strip_keys(i)) for i in items]

    def record_automated_response(self, threat_id: str, action: Action) -> bool:
        try:
            threat = self.get_threat(threat_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"record_automated_response pre-read failed for {threat_id}: {e}")
            raise PersistenceConflictError(
                "Failed to read threat before automated response",
                threat_id=threat_id,
                details={"action_type": action.action_type.value},
            ) from e
        if threat is None:
            raise ThreatNotFoundError(threat_id)
        if threat.status != ThreatStatus.ANALYZING:
            return False

        serialize = self._serializer.serialize
        action_item = {k: serialize(v) for k, v in self._action_item(action).items()}
        try:
            self.client.transact_write_items(
                ClientRequestToken=uuid.uuid5(uuid.NAMESPACE_URL, action.id).hex,
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table_name,
                            "Item": action_item,
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Update": {
                            "TableName": self.table_name,
                            "Key": {
                                "pk": serialize(f"THREAT#{threat_id}"),
                                "sk": serialize("THREAT"),
                            },
                            "UpdateExpression": "SET #status = :blocked, updated_at = :updated",
                            "ConditionExpression": "#status = :analyzing",
                            "ExpressionAttributeNames": {"#status": "status"},
                            "ExpressionAttributeValues": {
                                ":blocked": serialize(ThreatStatus.BLOCKED.value),
                                ":analyzing": serialize(ThreatStatus.ANALYZING.value),
                                ":updated": serialize(datetime.now(timezone.utc).isoformat()),
                            },
                        }
                    },
                ],
            )
        except (ClientError, BotoCoreError) as e:
            reasons = []
            if isinstance(e, ClientError):
                reasons = e.response.get("CancellationReasons") or []
            if len(reasons) > 1 and reasons[1].get("Code") == "ConditionalCheckFailed":
                logger.info(f"Threat {threat_id} left analyzing before response was recorded")
                return False
            logger.error(f"record_automated_response failed for {threat_id}: {e}")
            raise PersistenceConflictError(
                "Failed to record automated response",
                threat_id=threat_id,
                details={"action_type": action.action_type.value},
            ) from e
        return True

    # ========== CONFIG ==========

    def get_config_value(self, key: str) -> Optional[str]:
        resp = self.table.get_item(Key={"pk": f"CONFIG#{key}", "sk": "CONFIG"})
        item = resp.get("Item")
        return str(item["value"]) if item and "value" in item else None

    def set_config_value(self, key: str, value: str) -> None:
        self.table.put_item(Item={
            "pk": f"CONFIG#{key}",
            "sk": "CONFIG",
            "entity_type": "CONFIG",
            "value": value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })

    def _collect(self, query: Dict[str, Any], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Run a query, following pagination until `limit` items are gathered."""
        items: List[Dict[str, Any]] = []
        kwargs = dict(query)
        while True:
            resp = self.table.query(**kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(items) >= limit):
                break
            kwargs["ExclusiveStartKey"] = last_key
        return items if limit is None else items[:limit]

    def health_check(self) -> bool:
        try:
            self.table.table_status
            return True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False


class DynamoDBActivityStore(ActivityStore):
    """ActivityStore backed by a DynamoDB table keyed by subscriber."""

    DEFAULT_REGION = "us-east-1"

    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
    ):
        self.table_name = table_name or os.environ.get("TELEGUARD_DYNAMODB_ACTIVITY_TABLE")
        if not self.table_name:
            raise ValueError("TELEGUARD_DYNAMODB_ACTIVITY_TABLE required")

        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.dynamodb = session.resource("dynamodb", region_name=self.region)
        else:
            self.dynamodb = boto3.resource("dynamodb", region_name=self.region)

        self.table = self.dynamodb.Table(self.table_name)
        logger.info(f"DynamoDB activity store initialized: {self.table_name} ({self.region})")

    def add_activities(self, records: Iterable[ActivityRecord]) -> int:
        count = 0
        with self.table.batch_writer() as batch:
            for record in records:
                record_id = record.record_id or uuid.uuid4().hex[:16]
                ts = _iso(record.timestamp)
                batch.put_item(Item=to_dynamo({
                    "pk": f"SUBJECT#{record.subject_id}",
                    "sk": f"TS#{ts}#{record_id}",
                    "gsi1_pk": "ACTIVITY",
                    "gsi1_sk": ts,
                    **record.model_dump(mode="json"),
                    "record_id": record_id,
                }))
                count += 1
        return count

    def get_activities(
        self,
        subject_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ActivityRecord]:
        if subject_id is not None:
            condition = Key("pk").eq(f"SUBJECT#{subject_id}")
            lower = f"TS#{_iso(start)}" if start else "TS#"
            upper = f"TS#{_iso(end)}#~" if end else f"TS#{MAX_TIMESTAMP}"
            query: Dict[str, Any] = {
                "KeyConditionExpression": condition & Key("sk").between(lower, upper),
                "ScanIndexForward": False,
            }
        else:
            query = {
                "IndexName": GSI1,
                "KeyConditionExpression": _time_condition(Key("gsi1_pk").eq("ACTIVITY"), start, end),
                "ScanIndexForward": False,
            }

        items: List[Dict[str, Any]] = []
        while True:
            resp = self.table.query(**query)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(items) >= limit):
                break
            query["ExclusiveStartKey"] = last_key

        if limit is not None:
            items = items[:limit]
        return [ActivityRecord.model_validate(_strip_keys(i)) for i in items]
