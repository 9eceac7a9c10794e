"""Event schemas - the records fed into scoring.

An Event is one of CallRecord, MessageRecord or BehaviorSample,
discriminated on `record_type`.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class CallRecord(BaseModel):
    """Call detail record (voice call or SMS leg)."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "record_type": "call",
                "id": "cdr_8f2a61",
                "from_addr": "+15550100",
                "to_addr": "+15550199",
                "duration_seconds": 3,
                "timestamp": "2026-01-25T14:30:05Z",
                "kind": "voice",
                "location": "Lagos",
                "device_id": "imei_35209900176148",
            }
        },
    )

    record_type: Literal["call"] = "call"
    id: str = Field(..., min_length=1, description="Record identifier")
    from_addr: str = Field(..., min_length=1, description="Calling party address")
    to_addr: str = Field(..., min_length=1, description="Called party address")
    duration_seconds: int = Field(..., ge=0, description="Call duration in seconds")
    timestamp: datetime = Field(..., description="Call start time")
    kind: Literal["voice", "sms"] = Field(default="voice", description="Record kind")
    location: Optional[str] = Field(default=None, description="Serving cell / city")
    device_id: Optional[str] = Field(default=None, description="Originating device")

    @property
    def source(self) -> str:
        return self.from_addr


class MessageRecord(BaseModel):
    """SMS message metadata including the message body."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "record_type": "message",
                "id": "sms_1c9e04",
                "from_addr": "+15550123",
                "to_addr": "+15550456",
                "body": "URGENT click here to verify your account",
                "timestamp": "2026-01-25T14:30:05Z",
                "kind": "text",
            }
        },
    )

    record_type: Literal["message"] = "message"
    id: str = Field(..., min_length=1, description="Record identifier")
    from_addr: str = Field(..., min_length=1, description="Sender address")
    to_addr: str = Field(..., min_length=1, description="Recipient address")
    body: str = Field(..., description="Message body (never logged)")
    timestamp: datetime = Field(..., description="Send time")
    kind: Literal["text", "binary"] = Field(default="text", description="Payload kind")

    @property
    def source(self) -> str:
        return self.from_addr


class ActivitySnapshot(BaseModel):
    """One entry of a behavior sample's recent activity.

    Loosely typed: upstream producers send partial snapshots.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    timestamp: Optional[datetime] = None
    activity_type: Optional[str] = None
    direction: Optional[str] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None
    peer_address: Optional[str] = None
    is_roaming: Optional[bool] = None


class BehaviorSample(BaseModel):
    """Recent activity of one subscriber, scored as a whole."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "record_type": "behavior",
                "subject_id": "user_4412",
                "recent_activity": [
                    {"activity_type": "call", "direction": "out", "duration_seconds": 40},
                ],
                "timestamp": "2026-01-25T14:30:05Z",
            }
        },
    )

    record_type: Literal["behavior"] = "behavior"
    subject_id: str = Field(..., min_length=1, description="Subscriber identifier")
    recent_activity: List[ActivitySnapshot] = Field(
        default_factory=list, description="Ordered recent activity snapshots"
    )
    timestamp: datetime = Field(..., description="Sample time")

    @property
    def id(self) -> str:
        return f"{self.subject_id}@{self.timestamp.isoformat()}"

    @property
    def source(self) -> str:
        return f"User: {self.subject_id}"


Event = Annotated[
    Union[CallRecord, MessageRecord, BehaviorSample],
    Field(discriminator="record_type"),
]

EVENT_ADAPTER: TypeAdapter = TypeAdapter(Event)
