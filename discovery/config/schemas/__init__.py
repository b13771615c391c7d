"""Configuration schemas."""

from discovery.config.schemas.scoring import ScoringWeights


__all__ = ["ScoringWeights"]
