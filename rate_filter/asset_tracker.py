"""Registro de tuplas de asset tracking (servicio, asset, evento).

Singleton de proceso; thread-safe.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Set, Tuple

logger = logging.getLogger(__name__)

TrackingTuple = Tuple[str, str, str]


class AssetTracker:
    """Conjunto de tuplas ya registradas."""

    _instance: Optional["AssetTracker"] = None
    _lock = threading.Lock()

    def __init__(self):
        self._tuples: Set[TrackingTuple] = set()
        self._data_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "AssetTracker":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton (for testing)."""
        with cls._lock:
            cls._instance = None

    def add(self, service: str, asset: str, event: str) -> bool:
        """Registra la tupla; devuelve True si es nueva."""
        key = (service, asset, event)
        with self._data_lock:
            if key in self._tuples:
                return False
            self._tuples.add(key)
        logger.debug("Asset tracking tuple added: %s", key)
        return True

    def contains(self, service: str, asset: str, event: str) -> bool:
        with self._data_lock:
            return (service, asset, event) in self._tuples

    def tuples(self) -> Set[TrackingTuple]:
        with self._data_lock:
            return set(self._tuples)


def get_asset_tracker() -> AssetTracker:
    return AssetTracker.get_instance()
