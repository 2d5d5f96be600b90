"""Validation Gate."""

from warmspine.validation.gate import CacheLiveSampler, LiveSampler, ValidationGate, ValidationThresholds

__all__ = ["ValidationGate", "ValidationThresholds", "LiveSampler", "CacheLiveSampler"]
