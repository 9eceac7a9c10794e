"""Unit tests for ResilientScoreProvider selection and fallback."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from teleguard.common.config import Config
from teleguard.common.exceptions import TransientScoringError
from teleguard.data.schemas import (
    BehaviorSample,
    ScoreResult,
    SystemConfigSnapshot,
    ThreatType,
)
from teleguard.scoring import (
    HeuristicScoreProvider,
    InferenceScoreProvider,
    ResilientScoreProvider,
)
from teleguard.storage import InMemoryActivityStore


INFERENCE_RESULT = ScoreResult(
    score=9.0, threat_type=ThreatType.SMS_PHISHING, confidence=0.9, provider="inference"
)


@pytest.fixture
def primary():
    provider = MagicMock()
    provider.score.return_value = INFERENCE_RESULT
    return provider


class TestProviderSelection:
    """Which path scores an event."""

    def test_uses_primary_when_available(self, primary, phishing_sms, fixed_rng):
        scorer = ResilientScoreProvider(primary=primary, rng=fixed_rng(0.5))

        result = scorer.score(phishing_sms, SystemConfigSnapshot())

        assert result is INFERENCE_RESULT
        primary.score.assert_called_once()

    def test_falls_back_on_transient_error(self, primary, phishing_sms, fixed_rng, caplog):
        primary.score.side_effect = TransientScoringError("timeout", provider="inference")
        scorer = ResilientScoreProvider(primary=primary, rng=fixed_rng(0.5))

        with caplog.at_level("WARNING"):
            result = scorer.score(phishing_sms, SystemConfigSnapshot())

        assert result.provider == "heuristic"
        assert result.threat_type == ThreatType.SMS_PHISHING
        assert "using heuristic" in caplog.text

    def test_no_primary_uses_heuristic(self, phishing_sms, fixed_rng):
        scorer = ResilientScoreProvider(primary=None, rng=fixed_rng(0.9))

        result = scorer.score(phishing_sms, SystemConfigSnapshot())

        assert result.provider == "heuristic"
        assert result.score == pytest.approx(9.7)

    def test_kill_switch_forces_heuristic(self, primary, phishing_sms, fixed_rng):
        scorer = ResilientScoreProvider(primary=primary, rng=fixed_rng(0.0))

        result = scorer.score(phishing_sms, SystemConfigSnapshot(force_fallback_scoring=True))

        assert result.provider == "heuristic"
        primary.score.assert_not_called()

    def test_sampled_out_uses_heuristic(self, primary, phishing_sms, fixed_rng):
        scorer = ResilientScoreProvider(primary=primary, sample_rate=0.25, rng=fixed_rng(0.5))

        result = scorer.score(phishing_sms, SystemConfigSnapshot())

        assert result.provider == "heuristic"
        primary.score.assert_not_called()

    def test_zero_sample_rate_never_calls_primary(self, primary, phishing_sms, fixed_rng):
        scorer = ResilientScoreProvider(primary=primary, sample_rate=0.0, rng=fixed_rng(0.0))
        scorer.score(phishing_sms, SystemConfigSnapshot())
        primary.score.assert_not_called()

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_invalid_sample_rate(self, rate):
        with pytest.raises(ValueError):
            ResilientScoreProvider(sample_rate=rate)

    def test_close_closes_both(self, primary):
        fallback = MagicMock()
        ResilientScoreProvider(primary=primary, fallback=fallback).close()
        primary.close.assert_called_once()
        fallback.close.assert_called_once()


class TestBehaviorContext:
    """Behavior events carry an activity summary to the primary."""

    def test_context_loaded_from_activity_store(self, primary, make_activity, fixed_rng):
        store = InMemoryActivityStore([make_activity(i) for i in range(4)])
        scorer = ResilientScoreProvider(primary=primary, rng=fixed_rng(0.5), activity_store=store)
        sample = BehaviorSample(
            subject_id="user_4412", timestamp=datetime(2026, 1, 26, tzinfo=timezone.utc)
        )

        scorer.score(sample, SystemConfigSnapshot())

        context = primary.score.call_args[0][2]
        assert context.subject_id == "user_4412"
        assert context.total_calls == 4

    def test_store_failure_scores_without_context(self, primary, fixed_rng):
        store = MagicMock()
        store.get_activities.side_effect = RuntimeError("table missing")
        scorer = ResilientScoreProvider(primary=primary, rng=fixed_rng(0.5), activity_store=store)
        sample = BehaviorSample(
            subject_id="user_1", timestamp=datetime(2026, 1, 26, tzinfo=timezone.utc)
        )

        scorer.score(sample, SystemConfigSnapshot())

        assert primary.score.call_args[0][2] is None


class TestFromConfig:
    """Construction from static settings."""

    def test_without_url_has_no_primary(self, monkeypatch):
        monkeypatch.delenv("TELEGUARD_INFERENCE_URL", raising=False)
        scorer = ResilientScoreProvider.from_config(Config())
        assert scorer.primary is None
        assert isinstance(scorer.fallback, HeuristicScoreProvider)

    def test_with_url_builds_inference_primary(self, monkeypatch):
        monkeypatch.setenv("TELEGUARD_INFERENCE_URL", "https://scoring.test/v1/score")
        monkeypatch.setenv("TELEGUARD_INFERENCE_TIMEOUT_SECONDS", "8")

        scorer = ResilientScoreProvider.from_config(Config())

        assert isinstance(scorer.primary, InferenceScoreProvider)
        assert scorer.primary.timeout == (3.0, 8.0)

    def test_disabled_inference_has_no_primary(self, monkeypatch):
        monkeypatch.setenv("TELEGUARD_INFERENCE_URL", "https://scoring.test/v1/score")
        monkeypatch.setenv("TELEGUARD_INFERENCE_ENABLED", "false")
        assert ResilientScoreProvider.from_config(Config()).primary is None
