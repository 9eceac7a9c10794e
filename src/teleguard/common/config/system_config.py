"""System config - operator-tunable response flags.

The pipeline reads one SystemConfigSnapshot per run. Flags come from one
of three sources:
- Environment variables (TELEGUARD_<KEY>, local/dev)
- Parameter Store (instant updates across a fleet)
- The threat store's config table (tuned from the operator API)

Environment variables override every source, so a single host can be
pinned without touching shared state.

A backend that cannot be read raises ConfigUnavailableError. The caller
must then skip automated response; the auto-block defaults below are
never used as a substitute for an unreadable store.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from teleguard.common.exceptions import ConfigUnavailableError, ConfigurationError
from teleguard.data.schemas.config import SystemConfigSnapshot

logger = logging.getLogger(__name__)


class ConfigSource(str, Enum):
    """Sources for system flags."""
    ENVIRONMENT = "environment"
    PARAMETER_STORE = "parameter_store"
    STORE = "store"


class SystemConfigKey(str, Enum):
    AUTO_BLOCK_CRITICAL = "auto_block_critical"
    AUTO_BLOCK_FRAUD = "auto_block_fraud"
    SIM_SWAP_MANUAL = "sim_swap_manual"
    SMS_SENSITIVITY = "sms_sensitivity"
    CALL_SENSITIVITY = "call_sensitivity"
    FRAUD_SENSITIVITY = "fraud_sensitivity"
    FORCE_FALLBACK_SCORING = "force_fallback_scoring"


class SystemConfigProvider:
    """Reads system flags from the configured source.

    Environment variables:
    - TELEGUARD_<KEY>: per-flag override, e.g. TELEGUARD_AUTO_BLOCK_FRAUD=false
    - TELEGUARD_PARAMETER_STORE_PREFIX: Parameter Store prefix (default /teleguard/)
    """

    DEFAULT_REGION = "us-east-1"
    ENV_PREFIX = "TELEGUARD_"

    DEFAULTS: Dict[str, Any] = {
        SystemConfigKey.AUTO_BLOCK_CRITICAL.value: True,
        SystemConfigKey.AUTO_BLOCK_FRAUD.value: True,
        SystemConfigKey.SIM_SWAP_MANUAL.value: False,
        SystemConfigKey.SMS_SENSITIVITY.value: 80,
        SystemConfigKey.CALL_SENSITIVITY.value: 60,
        SystemConfigKey.FRAUD_SENSITIVITY.value: 85,
        SystemConfigKey.FORCE_FALLBACK_SCORING.value: False,
    }

    def __init__(
        self,
        source: ConfigSource = ConfigSource.ENVIRONMENT,
        store: Optional[Any] = None,
        region: Optional[str] = None,
        ssm_client: Optional[Any] = None,
    ):
        """Initialize the provider.

        Args:
            source: Where flags are read from
            store: ThreatStore exposing get_config_value/set_config_value (STORE source)
            region: AWS region for Parameter Store
            ssm_client: Pre-built SSM client (tests)
        """
        self.source = ConfigSource(source)
        self.store = store
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        self.parameter_store_prefix = os.environ.get(
            "TELEGUARD_PARAMETER_STORE_PREFIX", "/teleguard/"
        )
        self.ssm_client = ssm_client

        if self.source == ConfigSource.PARAMETER_STORE and self.ssm_client is None:
            self.ssm_client = boto3.client("ssm", region_name=self.region)
        if self.source == ConfigSource.STORE and self.store is None:
            raise ConfigurationError("STORE config source requires a store")

        logger.info(
            f"Initialized SystemConfigProvider: source={self.source.value}, region={self.region}"
        )

    def snapshot(self) -> SystemConfigSnapshot:
        """Read every flag once and freeze the result.

        Raises:
            ConfigUnavailableError: If the backing source cannot be read
        """
        values = {key: self.get(key) for key in self.DEFAULTS}
        try:
            return SystemConfigSnapshot(**values)
        except ValidationError as e:
            raise ConfigUnavailableError(
                "System config contains invalid values",
                details={"errors": [str(err.get("loc")) for err in e.errors()]},
            ) from e

    def get(self, key: str) -> Any:
        """Get one flag value.

        Load order:
        1. Environment variable
        2. Configured source
        3. Default value (only when the source has no entry for the key)
        """
        self._check_key(key)

        env_value = os.environ.get(f"{self.ENV_PREFIX}{key.upper()}")
        if env_value is not None:
            return _parse_value(env_value)

        if self.source == ConfigSource.PARAMETER_STORE:
            value = self._get_from_parameter_store(key)
        elif self.source == ConfigSource.STORE:
            value = self._get_from_store(key)
        else:
            value = None

        return self.DEFAULTS[key] if value is None else value

    def set(self, key: str, value: Any) -> bool:
        """Set a flag value (if the source supports it).

        The value is checked against the snapshot field before anything is
        written, and stored in normalized form.

        Returns:
            True if successful

        Raises:
            ConfigurationError: If the key is unknown or the value invalid
        """
        self._check_key(key)
        normalized = self._validate(key, value)
        stored = str(normalized).lower() if isinstance(normalized, bool) else str(normalized)

        if self.source == ConfigSource.ENVIRONMENT:
            logger.warning("Cannot set config with ENVIRONMENT source")
            return False

        if self.source == ConfigSource.PARAMETER_STORE:
            return self._set_in_parameter_store(key, stored)

        try:
            self.store.set_config_value(key, stored)
        except Exception as e:
            logger.error(f"Failed to set config {key}: {e}")
            return False
        logger.info(f"Updated config: {key} = {stored}")
        return True

    def _check_key(self, key: str) -> None:
        if key not in self.DEFAULTS:
            raise ConfigurationError(f"Unknown system config key: {key}", details={"key": key})

    def _validate(self, key: str, value: Any) -> Any:
        parsed = _parse_value(value) if isinstance(value, str) else value
        try:
            snapshot = SystemConfigSnapshot(**{key: parsed})
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid value for system config key {key}: {value!r}",
                details={"key": key, "errors": [err.get("msg") for err in e.errors()]},
            ) from e
        return getattr(snapshot, key)

    def _get_from_parameter_store(self, key: str) -> Optional[Any]:
        param_name = f"{self.parameter_store_prefix}{key}"
        try:
            response = self.ssm_client.get_parameter(Name=param_name, WithDecryption=True)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ParameterNotFound":
                return None
            logger.warning(f"Failed to get parameter {key}: {e}")
            raise ConfigUnavailableError(
                f"Parameter Store unavailable reading {key}", key=key
            ) from e
        except BotoCoreError as e:
            logger.warning(f"Failed to reach Parameter Store for {key}: {e}")
            raise ConfigUnavailableError(
                f"Parameter Store unavailable reading {key}", key=key
            ) from e

        return _parse_value(response["Parameter"]["Value"])

    def _set_in_parameter_store(self, key: str, value: str) -> bool:
        try:
            self.ssm_client.put_parameter(
                Name=f"{self.parameter_store_prefix}{key}",
                Value=value,
                Type="String",
                Overwrite=True,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to set parameter {key}: {e}")
            return False

        logger.info(f"Updated parameter: {key} = {value}")
        return True

    def _get_from_store(self, key: str) -> Optional[Any]:
        try:
            value = self.store.get_config_value(key)
        except Exception as e:
            logger.warning(f"Failed to read config {key} from store: {e}")
            raise ConfigUnavailableError(
                f"Config store unavailable reading {key}", key=key
            ) from e

        if value is None:
            return None
        return _parse_value(value) if isinstance(value, str) else value


def _parse_value(value: str) -> Any:
    """Parse string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value
