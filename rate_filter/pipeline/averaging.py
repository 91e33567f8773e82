"""Acumulador de promedios por datapoint.

Suma incremental por nombre de datapoint; cuando el `user_timestamp` de
la lectura supera `último envío + intervalo` se emite una lectura sintética
con el promedio de cada datapoint acumulado.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from ..core.domain import Datapoint, Reading

logger = logging.getLogger(__name__)


class AverageAccumulator:
    """Acumulador sum/count por nombre de datapoint.

    Las claves nunca se eliminan: tras una emisión quedan a 0.0, de modo
    que un datapoint ausente en un intervalo se promedia como 0.0.
    """

    def __init__(self, interval: timedelta = timedelta(0), last_sent: Optional[datetime] = None):
        self.interval = interval
        self.last_sent = last_sent
        self.count = 0
        self._sums: Dict[str, float] = {}

    @property
    def enabled(self) -> bool:
        """False si la tasa es 0 (promediado deshabilitado)."""
        return self.interval > timedelta(0)

    @property
    def sums(self) -> Dict[str, float]:
        return dict(self._sums)

    def fold(self, reading: Reading) -> None:
        """Suma los datapoints numéricos de la lectura."""
        for name, value in reading.numeric_values():
            self._sums[name] = self._sums.get(name, 0.0) + float(value)
        self.count += 1

    def is_due(self, user_timestamp: datetime) -> bool:
        if self.last_sent is None:
            return True
        return user_timestamp > self.last_sent + self.interval

    def maybe_emit(self, reading: Reading) -> Optional[Reading]:
        """Emite la lectura promedio si el periodo ha expirado.

        La lectura emitida toma el asset y ambos timestamps de `reading`.
        """
        if self.count == 0 or not self.is_due(reading.user_timestamp):
            return None

        datapoints = []
        for name in sorted(self._sums):
            datapoints.append(Datapoint(name, self._sums[name] / self.count))
            self._sums[name] = 0.0
        self.count = 0
        self.last_sent = reading.user_timestamp

        return Reading(
            asset_name=reading.asset_name,
            datapoints=datapoints,
            user_timestamp=reading.user_timestamp,
            timestamp=reading.timestamp,
        )

    def add(self, reading: Reading) -> Optional[Reading]:
        """fold + maybe_emit."""
        self.fold(reading)
        return self.maybe_emit(reading)

    def reset(self) -> None:
        """Pone a cero sumas y contador sin borrar claves."""
        for name in self._sums:
            self._sums[name] = 0.0
        self.count = 0
