"""Finality engine session handle."""

from conduit_finality.engine.client import FinalityEngine

__all__ = ["FinalityEngine"]
