"""Configuration management - Centralized static configuration for TeleGuard.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
Operator-tunable response flags live in system_config, not here.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Threat/action/activity storage backends."""
    MEMORY = "memory"
    DYNAMODB = "dynamodb"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> teleguard -> src -> project_root
    return Path(__file__).resolve().parent.parent.parent.parent.parent


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "yes", "1")


@dataclass
class Config:
    """Central configuration object for TeleGuard.

    All settings can be overridden via environment variables prefixed with TELEGUARD_.

    Example:
        TELEGUARD_ENVIRONMENT=production
        TELEGUARD_STORAGE_BACKEND=dynamodb
        TELEGUARD_INFERENCE_URL=https://scoring.internal/v1/score
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("TELEGUARD_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: _env_bool("TELEGUARD_DEBUG", "false")
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("TELEGUARD_LOG_LEVEL", "INFO"))
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)

    # Storage
    storage_backend: StorageBackend = field(
        default_factory=lambda: StorageBackend(
            os.getenv("TELEGUARD_STORAGE_BACKEND", "memory")
        )
    )
    dynamodb_threats_table: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGUARD_DYNAMODB_THREATS_TABLE")
    )
    dynamodb_activity_table: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGUARD_DYNAMODB_ACTIVITY_TABLE")
    )
    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )

    # External inference
    inference_url: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGUARD_INFERENCE_URL")
    )
    inference_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGUARD_INFERENCE_API_KEY")
    )
    inference_enabled: bool = field(
        default_factory=lambda: _env_bool("TELEGUARD_INFERENCE_ENABLED", "true")
    )
    inference_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv("TELEGUARD_INFERENCE_TIMEOUT_SECONDS", "10")
        )
    )
    inference_sample_rate: float = field(
        default_factory=lambda: float(
            os.getenv("TELEGUARD_INFERENCE_SAMPLE_RATE", "1.0")
        )
    )

    # Policy & audit
    policy_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["TELEGUARD_POLICY_FILE"])
            if os.getenv("TELEGUARD_POLICY_FILE") else None
        )
    )
    audit_log_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("TELEGUARD_AUDIT_LOG_DIR", "./logs/audit")
        )
    )

    # Notifications
    sns_topic_arn: Optional[str] = field(
        default_factory=lambda: os.getenv("TELEGUARD_SNS_TOPIC_ARN")
    )

    # Pipeline
    pipeline_max_workers: int = field(
        default_factory=lambda: int(os.getenv("TELEGUARD_PIPELINE_MAX_WORKERS", "4"))
    )
    config_source: str = field(
        default_factory=lambda: os.getenv("TELEGUARD_CONFIG_SOURCE", "environment")
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.storage_backend == StorageBackend.DYNAMODB:
            if not self.dynamodb_threats_table:
                raise ValueError(
                    "TELEGUARD_DYNAMODB_THREATS_TABLE must be set when using DynamoDB storage"
                )

        if not 0.0 <= self.inference_sample_rate <= 1.0:
            raise ValueError("TELEGUARD_INFERENCE_SAMPLE_RATE must be within [0, 1]")

        if self.inference_timeout_seconds <= 0:
            raise ValueError("TELEGUARD_INFERENCE_TIMEOUT_SECONDS must be positive")

        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def inference_configured(self) -> bool:
        """Whether the primary scoring path can be used at all."""
        return self.inference_enabled and bool(self.inference_url)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
