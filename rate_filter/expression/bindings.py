"""Tabla de variables de una expresión.

La tabla se construye una sola vez a partir de una lectura de muestra:
cada datapoint numérico registra dos variables, su nombre simple y el
nombre cualificado `asset.datapoint`. La capacidad es fija; lo que no
cabe se descarta con un warning y el filtro sigue funcionando.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..core.domain import Reading

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 20


class VariableBindings:
    """Tabla (nombre, slot) de capacidad fija.

    Los valores se sobrescriben en cada `update`; las variables que no
    aparecen en la lectura conservan su último valor.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self.names: List[str] = []
        self.values: List[float] = []
        self._index: Dict[str, int] = {}

    @classmethod
    def from_reading(cls, reading: Reading, capacity: int = DEFAULT_CAPACITY) -> "VariableBindings":
        """Registra las variables de los datapoints numéricos, en orden."""
        bindings = cls(capacity)
        for name, _ in reading.numeric_values():
            if name in bindings._index:
                continue
            if len(bindings.names) + 2 > capacity:
                logger.warning(
                    "EXPRESSION_VARIABLES_EXCEEDED asset=%s capacity=%d first_dropped=%s",
                    reading.asset_name,
                    capacity,
                    name,
                )
                break
            bindings._register(name)
            bindings._register(f"{reading.asset_name}.{name}")
        return bindings

    def _register(self, name: str) -> None:
        if name in self._index:
            return
        self._index[name] = len(self.names)
        self.names.append(name)
        self.values.append(0.0)

    def slot(self, name: str) -> Optional[int]:
        return self._index.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self.names)

    def update(self, reading: Reading) -> None:
        """Copia los valores numéricos de la lectura a los slots que coincidan."""
        prefix = f"{reading.asset_name}."
        for name, value in reading.numeric_values():
            bare = self._index.get(name)
            if bare is not None:
                self.values[bare] = float(value)
            qualified = self._index.get(prefix + name)
            if qualified is not None:
                self.values[qualified] = float(value)
