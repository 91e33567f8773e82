"""Domain layer - Modelos."""

from .reading import Datapoint, Reading, is_numeric

__all__ = ["Datapoint", "Reading", "is_numeric"]
