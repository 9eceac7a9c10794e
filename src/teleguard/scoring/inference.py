"""Inference Score Provider - adapter for the external AI scoring service.

Request body:
    {
      "event_type": "call" | "message" | "behavior",
      "event": {...},
      "sensitivity": {"sms": 80, "call": 60, "fraud": 85},
      "behavior_context": {...}            # behavior events only, optional
    }

Accepted response (camelCase or snake_case):
    {"score"|"threatScore", "threatType"|"threat_type", "confidence",
     "description", "recommendations"}

Every failure (transport, timeout, non-2xx, empty or malformed body,
schema mismatch) raises TransientScoringError. The caller falls back.

The requests (connect, read) timeout bounds each socket read, not the
whole call, so the body is streamed and checked against one overall
deadline. A call can overrun the deadline by at most one read timeout.
"""

import json
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from teleguard.common.constants import ScoringConstants
from teleguard.common.exceptions import TransientScoringError
from teleguard.data.schemas import (
    ActivityPattern,
    BehaviorSample,
    Event,
    ScoreResult,
    SystemConfigSnapshot,
    ThreatType,
)
from teleguard.scoring.base import ScoreProvider

logger = logging.getLogger(__name__)


class InferenceResponse(BaseModel):
    """Shape expected back from the inference service."""

    score: float = Field(
        ..., ge=0.0, le=10.0, validation_alias=AliasChoices("score", "threatScore", "threat_score")
    )
    threat_type: ThreatType = Field(
        ..., validation_alias=AliasChoices("threat_type", "threatType")
    )
    confidence: float = Field(..., ge=0.0, le=1.0)
    description: str = ""
    recommendations: List[str] = Field(default_factory=list)


class InferenceScoreProvider(ScoreProvider):
    """Calls the external scoring service over HTTP JSON."""

    name = "inference"

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: Tuple[float, float] = (
            ScoringConstants.INFERENCE_CONNECT_TIMEOUT_SECONDS,
            ScoringConstants.INFERENCE_READ_TIMEOUT_SECONDS,
        ),
        session: Optional[requests.Session] = None,
        deadline: Optional[float] = None,
    ):
        """Initialize the adapter.

        Args:
            url: Scoring endpoint
            api_key: Optional bearer token
            timeout: (connect, read) timeout in seconds
            session: Pre-built requests session (tests)
            deadline: Overall budget for one call in seconds. Defaults to
                connect + read timeout.
        """
        if not url:
            raise ValueError("Inference URL is required")
        self.url = url
        self.timeout = timeout
        self.deadline = deadline if deadline is not None else sum(timeout)
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self._session.headers.update({"Authorization": f"Bearer {api_key}"})
        self._closed = threading.Event()

    @staticmethod
    def build_request(
        event: Event,
        config: SystemConfigSnapshot,
        context: Optional[ActivityPattern] = None,
    ) -> Dict[str, Any]:
        """Build the request body from a read-only view of the event."""
        body: Dict[str, Any] = {
            "event_type": event.record_type,
            "event": event.model_dump(mode="json"),
            "sensitivity": config.sensitivity_hints(),
        }
        if isinstance(event, BehaviorSample) and context is not None:
            body["behavior_context"] = context.model_dump(mode="json")
        return body

    def score(
        self,
        event: Event,
        config: SystemConfigSnapshot,
        context: Optional[ActivityPattern] = None,
    ) -> ScoreResult:
        if self._closed.is_set():
            raise TransientScoringError("Inference provider is closed", provider=self.name)

        payload = self.build_request(event, config, context)
        deadline = time.monotonic() + self.deadline
        try:
            response = self._session.post(
                self.url, json=payload, timeout=self.timeout, stream=True
            )
            try:
                response.raise_for_status()
                body = self._read_body(response, deadline)
            finally:
                response.close()
        except requests.RequestException as exc:
            raise TransientScoringError(
                f"Inference request failed: {exc}",
                provider=self.name,
                details={"error_type": type(exc).__name__},
            ) from exc

        if not body.strip():
            raise TransientScoringError("Inference returned an empty body", provider=self.name)

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise TransientScoringError(
                "Inference returned malformed JSON", provider=self.name
            ) from exc

        if not isinstance(data, dict):
            raise TransientScoringError(
                "Inference returned a non-object body", provider=self.name
            )

        try:
            parsed = InferenceResponse.model_validate(data)
        except ValidationError as exc:
            raise TransientScoringError(
                "Inference response does not match the score schema",
                provider=self.name,
                details={"fields": [".".join(str(p) for p in e["loc"]) for e in exc.errors()]},
            ) from exc

        return ScoreResult(
            score=parsed.score,
            threat_type=parsed.threat_type,
            confidence=parsed.confidence,
            description=parsed.description,
            recommendations=parsed.recommendations,
            provider="inference",
        )

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        chunks = []
        for chunk in response.iter_content(chunk_size=ScoringConstants.INFERENCE_CHUNK_BYTES):
            if time.monotonic() > deadline:
                raise TransientScoringError(
                    f"Inference call exceeded its {self.deadline:.1f}s deadline",
                    provider=self.name,
                    details={"error_type": "DeadlineExceeded"},
                )
            chunks.append(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        """Close the HTTP session. In-flight and later calls fail over to the fallback."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._session.close()
        logger.info("Inference session closed")
