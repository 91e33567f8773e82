"""Motores del filtro: buffer de pre-trigger, promedios y exclusiones."""

from .averaging import AverageAccumulator
from .exclusions import ExclusionList
from .pretrigger_buffer import PretriggerBuffer

__all__ = ["AverageAccumulator", "ExclusionList", "PretriggerBuffer"]
