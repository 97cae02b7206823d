"""Analytics subpackage bundling numeric helpers shared by the engine."""

from . import metrics

__all__ = ["metrics"]
