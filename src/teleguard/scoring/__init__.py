"""Scoring - inference adapter, heuristic fallback and the selector between them."""

from teleguard.scoring.base import ScoreProvider
from teleguard.scoring.heuristic import HeuristicScoreProvider
from teleguard.scoring.inference import InferenceResponse, InferenceScoreProvider
from teleguard.scoring.provider import ResilientScoreProvider

__all__ = [
    "ScoreProvider",
    "HeuristicScoreProvider",
    "InferenceResponse",
    "InferenceScoreProvider",
    "ResilientScoreProvider",
]
