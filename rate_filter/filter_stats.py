"""Estadísticas del filtro de tasa."""

from __future__ import annotations


class RateFilterStats:
    """Contadores acumulados desde la creación del filtro."""

    def __init__(self):
        self.received = 0
        self.forwarded = 0
        self.buffered_forwarded = 0
        self.averaged = 0
        self.dropped = 0
        self.triggers = 0
        self.untriggers = 0
        self.rebuilds = 0

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} forwarded={self.forwarded} "
            f"averaged={self.averaged} dropped={self.dropped} "
            f"triggers={self.triggers} untriggers={self.untriggers}"
        )

    def to_dict(self) -> dict:
        """Convert stats to dictionary."""
        return {
            "received": self.received,
            "forwarded": self.forwarded,
            "buffered_forwarded": self.buffered_forwarded,
            "averaged": self.averaged,
            "dropped": self.dropped,
            "triggers": self.triggers,
            "untriggers": self.untriggers,
            "rebuilds": self.rebuilds,
        }
