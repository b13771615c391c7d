"""Scoring configuration loading and validation."""

from discovery.config.loader import ConfigValidationError, WeightsLoader
from discovery.config.schemas import ScoringWeights


__all__ = ["ConfigValidationError", "ScoringWeights", "WeightsLoader"]
