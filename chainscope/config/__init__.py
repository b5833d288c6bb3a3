"""Configuration for chainscope."""

from .settings import ForensicsConfig, HeuristicThresholds

__all__ = ["ForensicsConfig", "HeuristicThresholds"]
