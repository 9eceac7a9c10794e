"""API Gateway - FastAPI application over the threat pipeline and operator actions."""

import logging, os, threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional
from uuid import uuid4

from fastapi import Body, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from teleguard.api.schemas import (
    ActionListResponse,
    AnomalyListResponse,
    BatchEventRequest,
    BatchEventResponse,
    BehaviorScoreRequest,
    ConfigUpdateRequest,
    ErrorResponse,
    EventResponse,
    ManualActionRequest,
    StatusUpdateRequest,
    SystemConfigResponse,
    ThreatListResponse,
)
from teleguard.api.service import TeleGuardService
from teleguard.common.constants import DataConstants
from teleguard.common.exceptions import TeleGuardException
from teleguard.common.logging import LOG_FORMAT
from teleguard.data.schemas import Action, Severity, Threat, ThreatStatus, ThreatType

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger("teleguard_api")


class ServiceManager:
    """Thread-safe service singleton manager."""

    _instance: Optional[TeleGuardService] = None
    _lock = threading.Lock()
    _initialized = False

    @classmethod
    def get_service(cls) -> TeleGuardService:
        """Get or create the service instance (thread-safe)."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = TeleGuardService()
                    cls._initialized = True
                    logger.info("TeleGuardService initialized")
        return cls._instance

    @classmethod
    def set_service(cls, service: Optional[TeleGuardService]) -> None:
        """Install a pre-built service (or clear it)."""
        with cls._lock:
            cls._instance = service
            cls._initialized = service is not None

    @classmethod
    def shutdown(cls) -> None:
        """Shutdown the service and release resources."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.shutdown()
                cls._instance = None
                cls._initialized = False

                logger.info("TeleGuardService shutdown complete")


def get_service() -> TeleGuardService:
    """Get the service instance."""
    return ServiceManager.get_service()


# =============================================================================
# CORS CONFIGURATION
# =============================================================================

def get_cors_origins() -> List[str]:
    """Get allowed CORS origins from environment.

    In production, set TELEGUARD_CORS_ORIGINS to a comma-separated list
    of allowed origins.
    """
    origins_env = os.environ.get("TELEGUARD_CORS_ORIGINS", "")

    if origins_env:
        return [origin.strip() for origin in origins_env.split(",") if origin.strip()]

    if os.environ.get("TELEGUARD_ENVIRONMENT", "development") == "production":
        logger.warning(
            "TELEGUARD_CORS_ORIGINS not set in production. "
            "CORS will be disabled. Set TELEGUARD_CORS_ORIGINS for cross-origin access."
        )
        return []

    logger.warning("Running in development mode with permissive CORS (allow_origins=['*'])")
    return ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("TeleGuard API Gateway starting up...")
    get_service()
    logger.info("TeleGuard API Gateway ready")

    yield

    logger.info("TeleGuard API Gateway shutting down...")
    ServiceManager.shutdown()
    logger.info("TeleGuard API Gateway shutdown complete")


environment = os.environ.get("TELEGUARD_ENVIRONMENT", "development")
enable_docs_default = "false" if environment == "production" else "true"
enable_docs = os.environ.get("TELEGUARD_ENABLE_DOCS", enable_docs_default).lower() == "true"

app = FastAPI(
    title="TeleGuard API Gateway",
    description="Telecom threat scoring and automated response API.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if enable_docs else None,
    redoc_url="/redoc" if enable_docs else None,
)


cors_origins = get_cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

STATUS_BY_CODE = {
    "INVALID_EVENT": 422,
    "THREAT_NOT_FOUND": 404,
    "OPERATOR_ACTION_ERROR": 409,
    "CONFIG_ERROR": 400,
    "CONFIG_UNAVAILABLE": 503,
}


def _status_for(exc: TeleGuardException) -> int:
    if exc.code in STATUS_BY_CODE:
        return STATUS_BY_CODE[exc.code]
    return 503 if exc.retryable else 500


@app.exception_handler(TeleGuardException)
async def teleguard_error_handler(request: Request, exc: TeleGuardException) -> JSONResponse:
    """Map domain errors to HTTP status codes."""
    request_id = getattr(request.state, "request_id", None)
    status_code = _status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"Request failed: {exc.code}",
        extra={"request_id": request_id, "error": exc.message},
    )
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.code.lower(),
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        ).model_dump(),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle validation errors."""
    request_id = getattr(request.state, "request_id", None)
    logger.warning(
        "Validation error",
        extra={"request_id": request_id, "error": str(exc)}
    )
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error="validation_error",
            message=str(exc),
            request_id=request_id,
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors.

    Logs full exception for debugging but returns sanitized message to client.
    """
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "Unexpected error",
        extra={"request_id": request_id, "error_type": type(exc).__name__}
    )
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
            request_id=request_id,
        ).model_dump(),
    )


# =============================================================================
# MIDDLEWARE
# =============================================================================

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to each request for tracing."""
    request_id = request.headers.get("X-Request-ID") or f"req_{uuid4().hex[:12]}"
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.post(
    "/events",
    response_model=EventResponse,
    responses={
        422: {"description": "Event rejected", "model": EventResponse},
        500: {"description": "Internal server error", "model": ErrorResponse},
    },
    summary="Score one telecom event",
)
def process_event(response: Response, payload: Dict[str, Any] = Body(...)) -> EventResponse:
    """Run one call record, message or behavior sample through the pipeline.

    A rejected event returns 422 with the validation errors; every other
    outcome returns 200 with the outcome named in the body.
    """
    result = get_service().process_event(payload)
    if result.outcome == "rejected":
        response.status_code = 422
    logger.info(
        "Event processed",
        extra={"event_id": result.event_id, "outcome": result.outcome},
    )
    return result


@app.post("/events/batch", response_model=BatchEventResponse, summary="Score several events")
def process_batch(request: BatchEventRequest) -> BatchEventResponse:
    result = get_service().process_batch(request.events)
    logger.info("Batch processed", extra={"counts": result.counts})
    return result


@app.post(
    "/subjects/{subject_id}/behavior",
    response_model=EventResponse,
    summary="Score a subscriber's stored activity",
)
def score_behavior(
    subject_id: str, request: Optional[BehaviorScoreRequest] = None
) -> EventResponse:
    request = request or BehaviorScoreRequest()
    return get_service().score_behavior(subject_id, start=request.start, end=request.end)


@app.get("/threats", response_model=ThreatListResponse)
def list_threats(
    limit: int = Query(DataConstants.DEFAULT_QUERY_LIMIT, ge=1, le=DataConstants.ACTIVITY_SCAN_LIMIT),
    offset: int = Query(0, ge=0),
    severity: Optional[Severity] = None,
    threat_type: Optional[ThreatType] = None,
    status: Optional[ThreatStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> ThreatListResponse:
    return get_service().list_threats(
        limit=limit, offset=offset, severity=severity, threat_type=threat_type,
        status=status, start=start, end=end,
    )


@app.get("/threats/{threat_id}", response_model=Threat)
def get_threat(threat_id: str) -> Threat:
    return get_service().get_threat(threat_id)


@app.patch("/threats/{threat_id}/status", response_model=Threat)
def update_threat_status(threat_id: str, request: StatusUpdateRequest) -> Threat:
    """Analyst status change. Disallowed transitions return 409."""
    return get_service().change_status(
        threat_id, request.status, request.analyst, reason=request.reason
    )


@app.get("/actions", response_model=ActionListResponse)
def list_actions(
    limit: int = Query(DataConstants.DEFAULT_ACTION_LIMIT, ge=1, le=DataConstants.ACTIVITY_SCAN_LIMIT),
    threat_id: Optional[str] = None,
) -> ActionListResponse:
    return get_service().list_actions(limit=limit, threat_id=threat_id)


@app.post("/actions", response_model=Action, status_code=201)
def record_action(request: ManualActionRequest) -> Action:
    return get_service().record_action(
        request.action_type, request.analyst, details=request.details, threat_id=request.threat_id
    )


@app.get("/anomalies/statistical", response_model=AnomalyListResponse)
def statistical_anomalies(
    subject_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = Query(DataConstants.ACTIVITY_SCAN_LIMIT, ge=1),
) -> AnomalyListResponse:
    return get_service().scan_anomalies(subject_id=subject_id, start=start, end=end, limit=limit)


@app.get("/system-config", response_model=SystemConfigResponse)
def get_system_config() -> SystemConfigResponse:
    return get_service().get_system_config()


@app.patch("/system-config/{key}", response_model=SystemConfigResponse)
def update_system_config(key: str, request: ConfigUpdateRequest) -> SystemConfigResponse:
    return get_service().update_system_config(key, request.value)


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint."""
    if not ServiceManager._initialized:
        return {"status": "healthy", "service": "teleguard-gateway"}
    return {"service": "teleguard-gateway", **get_service().health()}


@app.get("/ready")
async def readiness_check() -> dict:
    """Readiness check endpoint.

    Returns 503 until the service singleton is initialized.
    """
    if not ServiceManager._initialized:
        raise HTTPException(status_code=503, detail="not_ready")
    return {"status": "ready", "service": "teleguard-gateway"}


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "teleguard.api.gateway:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
