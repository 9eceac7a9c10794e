"""Tests for system flags and the config snapshot read per pipeline run."""

import os
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from teleguard.common.config import ConfigSource, SystemConfigKey, SystemConfigProvider
from teleguard.common.config.system_config import _parse_value
from teleguard.common.exceptions import ConfigUnavailableError, ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in SystemConfigKey:
        monkeypatch.delenv(f"TELEGUARD_{key.value.upper()}", raising=False)


@pytest.fixture
def mock_ssm():
    return MagicMock()


@pytest.fixture
def ssm_provider(mock_ssm):
    return SystemConfigProvider(
        source=ConfigSource.PARAMETER_STORE, region="us-east-1", ssm_client=mock_ssm
    )


def _not_found():
    return ClientError({"Error": {"Code": "ParameterNotFound", "Message": ""}}, "GetParameter")


class TestEnvironmentSource:

    def test_defaults(self):
        snapshot = SystemConfigProvider().snapshot()

        assert snapshot.auto_block_critical is True
        assert snapshot.auto_block_fraud is True
        assert snapshot.sim_swap_manual is False
        assert snapshot.sensitivity_hints() == {"sms": 80, "call": 60, "fraud": 85}

    def test_environment_variable(self):
        with patch.dict(os.environ, {"TELEGUARD_AUTO_BLOCK_FRAUD": "false"}):
            snapshot = SystemConfigProvider().snapshot()
        assert snapshot.auto_block_fraud is False

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            SystemConfigProvider().get("disable_everything")

    def test_set_not_supported(self):
        assert SystemConfigProvider().set("auto_block_fraud", False) is False

    def test_invalid_value_makes_config_unavailable(self):
        with patch.dict(os.environ, {"TELEGUARD_SMS_SENSITIVITY": "250"}):
            with pytest.raises(ConfigUnavailableError):
                SystemConfigProvider().snapshot()


class TestParameterStoreSource:

    @patch("teleguard.common.config.system_config.boto3.client")
    def test_creates_ssm_client(self, mock_boto3_client):
        provider = SystemConfigProvider(source=ConfigSource.PARAMETER_STORE, region="eu-west-1")

        mock_boto3_client.assert_called_once_with("ssm", region_name="eu-west-1")
        assert provider.ssm_client is mock_boto3_client.return_value

    def test_get_from_parameter_store(self, ssm_provider, mock_ssm):
        mock_ssm.get_parameter.return_value = {"Parameter": {"Value": "false"}}

        assert ssm_provider.get("auto_block_critical") is False
        mock_ssm.get_parameter.assert_called_with(
            Name="/teleguard/auto_block_critical", WithDecryption=True
        )

    def test_parameter_not_found_uses_default(self, ssm_provider, mock_ssm):
        mock_ssm.get_parameter.side_effect = _not_found()
        assert ssm_provider.get("call_sensitivity") == 60

    def test_backend_error_is_unavailable(self, ssm_provider, mock_ssm):
        mock_ssm.get_parameter.side_effect = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": ""}}, "GetParameter"
        )
        with pytest.raises(ConfigUnavailableError) as exc_info:
            ssm_provider.snapshot()
        assert exc_info.value.details["key"] == "auto_block_critical"

    def test_unreachable_endpoint_is_unavailable(self, ssm_provider, mock_ssm):
        mock_ssm.get_parameter.side_effect = EndpointConnectionError(endpoint_url="https://ssm")
        with pytest.raises(ConfigUnavailableError):
            ssm_provider.get("auto_block_fraud")

    def test_environment_overrides_parameter_store(self, ssm_provider, mock_ssm):
        with patch.dict(os.environ, {"TELEGUARD_SIM_SWAP_MANUAL": "true"}):
            assert ssm_provider.get("sim_swap_manual") is True
        mock_ssm.get_parameter.assert_not_called()

    def test_set_in_parameter_store(self, ssm_provider, mock_ssm):
        assert ssm_provider.set("auto_block_fraud", False) is True
        mock_ssm.put_parameter.assert_called_once_with(
            Name="/teleguard/auto_block_fraud", Value="false", Type="String", Overwrite=True
        )

    def test_set_failure_returns_false(self, ssm_provider, mock_ssm):
        mock_ssm.put_parameter.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": ""}}, "PutParameter"
        )
        assert ssm_provider.set("auto_block_fraud", False) is False

    def test_invalid_value_never_reaches_parameter_store(self, ssm_provider, mock_ssm):
        with pytest.raises(ConfigurationError) as exc_info:
            ssm_provider.set("call_sensitivity", 150)

        assert exc_info.value.details["key"] == "call_sensitivity"
        mock_ssm.put_parameter.assert_not_called()

    def test_custom_prefix(self, mock_ssm):
        mock_ssm.get_parameter.side_effect = _not_found()
        with patch.dict(os.environ, {"TELEGUARD_PARAMETER_STORE_PREFIX": "/prod/tg/"}):
            provider = SystemConfigProvider(
                source=ConfigSource.PARAMETER_STORE, ssm_client=mock_ssm
            )
        provider.get("auto_block_fraud")
        assert mock_ssm.get_parameter.call_args.kwargs["Name"] == "/prod/tg/auto_block_fraud"


class TestStoreSource:

    def test_requires_store(self):
        with pytest.raises(ConfigurationError):
            SystemConfigProvider(source=ConfigSource.STORE)

    def test_set_then_snapshot(self, threat_store):
        provider = SystemConfigProvider(source=ConfigSource.STORE, store=threat_store)

        assert provider.set("auto_block_critical", False) is True
        assert provider.set("fraud_sensitivity", 70) is True

        snapshot = provider.snapshot()
        assert threat_store.get_config_value("auto_block_critical") == "false"
        assert snapshot.auto_block_critical is False
        assert snapshot.fraud_sensitivity == 70

    def test_string_values_stored_normalized(self, threat_store):
        provider = SystemConfigProvider(source=ConfigSource.STORE, store=threat_store)

        assert provider.set("auto_block_critical", "no") is True
        assert provider.set("sms_sensitivity", "75") is True

        assert threat_store.get_config_value("auto_block_critical") == "false"
        assert threat_store.get_config_value("sms_sensitivity") == "75"
        assert provider.snapshot().auto_block_critical is False

    @pytest.mark.parametrize("key,value", [
        ("auto_block_critical", "maybe"),
        ("auto_block_fraud", "disabled"),
        ("sms_sensitivity", 101),
        ("fraud_sensitivity", "high"),
    ])
    def test_invalid_value_rejected(self, threat_store, key, value):
        provider = SystemConfigProvider(source=ConfigSource.STORE, store=threat_store)

        with pytest.raises(ConfigurationError):
            provider.set(key, value)

        assert threat_store.get_config_value(key) is None
        assert provider.snapshot() is not None

    def test_store_failure_is_unavailable(self):
        store = MagicMock()
        store.get_config_value.side_effect = IOError("table unreachable")
        provider = SystemConfigProvider(source=ConfigSource.STORE, store=store)

        with pytest.raises(ConfigUnavailableError):
            provider.snapshot()


class TestParseValue:

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("YES", True),
        ("false", False),
        ("no", False),
        ("42", 42),
        ("0.5", 0.5),
        ("1", 1),
        ("strict", "strict"),
    ])
    def test_parse(self, raw, expected):
        value = _parse_value(raw)
        assert value == expected
        assert type(value) is type(expected)
