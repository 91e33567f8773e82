"""Buffer de pre-trigger.

Mientras el filtro no está disparado se guardan copias de las lecturas
de los últimos `window_ms` milisegundos. Al dispararse, el buffer se
vacía completo hacia la salida (opcionalmente filtrado por el valor de
un datapoint de la lectura que disparó).
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import timedelta
from typing import Deque, List, Optional

from ..core.domain import Reading

logger = logging.getLogger(__name__)


class PretriggerBuffer:
    """Cola FIFO de copias de lecturas acotada por antigüedad.

    Invariante: tras cada `push`, ninguna entrada es más antigua que la
    ventana respecto a la lectura más reciente (por `user_timestamp`).
    """

    def __init__(self, window_ms: int = 0, filter_datapoint: Optional[str] = None):
        self._buffer: Deque[Reading] = deque()
        self.window_ms = window_ms
        self.filter_datapoint = filter_datapoint or None

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @window_ms.setter
    def window_ms(self, value: int) -> None:
        self._window_ms = int(value)
        self._window = timedelta(milliseconds=self._window_ms)

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, reading: Reading) -> None:
        """Guarda una copia y descarta las entradas fuera de la ventana."""
        if self._window_ms == 0:
            return
        self._buffer.append(reading.copy())

        newest = reading.user_timestamp
        while self._buffer and newest - self._buffer[0].user_timestamp > self._window:
            self._buffer.popleft()

    def flush_all(self) -> List[Reading]:
        """Vacía el buffer devolviendo las lecturas en orden FIFO."""
        readings = list(self._buffer)
        self._buffer.clear()
        return readings

    def flush_filtered(self, trigger: Reading) -> List[Reading]:
        """Vacía el buffer devolviendo solo las lecturas que coinciden con el trigger.

        Una lectura coincide si tiene el datapoint de filtro con el mismo
        valor y el mismo tipo (entero/entero o float/float) que en la
        lectura que disparó. Sin datapoint de filtro configurado, o si la
        lectura que disparó no lo tiene, se comporta como `flush_all`.
        """
        if not self.filter_datapoint:
            return self.flush_all()
        match = trigger.find(self.filter_datapoint)
        if match is None:
            return self.flush_all()

        forwarded: List[Reading] = []
        dropped = 0
        while self._buffer:
            reading = self._buffer.popleft()
            if self._matches(reading, match.kind, match.value):
                forwarded.append(reading)
            else:
                dropped += 1

        if dropped:
            logger.debug(
                "Pretrigger filter '%s'=%r dropped %d buffered readings",
                self.filter_datapoint,
                match.value,
                dropped,
            )
        return forwarded

    def _matches(self, reading: Reading, kind: str, value) -> bool:
        for dp in reading.datapoints:
            if dp.name != self.filter_datapoint or dp.kind != kind:
                continue
            if kind in ("integer", "float") and dp.value == value:
                return True
        return False

    def clear(self) -> None:
        self._buffer.clear()
