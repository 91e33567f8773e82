"""Modelo de dominio para lecturas del pipeline.

Una lectura agrupa varios datapoints de un mismo asset con dos
timestamps: el del usuario (momento de la observación) y el de ingesta.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

Number = Union[int, float]


def is_numeric(value: Any) -> bool:
    """True si el valor es entero o float (bool no cuenta como numérico)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Datapoint:
    """Par nombre/valor dentro de una lectura."""
    name: str
    value: Any

    @property
    def is_numeric(self) -> bool:
        return is_numeric(self.value)

    @property
    def kind(self) -> str:
        """Tipo del valor: 'integer', 'float' u 'other'."""
        if isinstance(self.value, bool):
            return "other"
        if isinstance(self.value, int):
            return "integer"
        if isinstance(self.value, float):
            return "float"
        return "other"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Reading:
    """Lectura de un asset - contrato que fluye por el filtro.

    `user_timestamp` es el que gobierna ventanas de pre-trigger y
    periodos de promediado; `timestamp` es el de ingesta.
    """
    asset_name: str
    datapoints: List[Datapoint] = field(default_factory=list)
    user_timestamp: datetime = field(default_factory=_now)
    timestamp: datetime = field(default_factory=_now)

    @classmethod
    def from_values(
        cls,
        asset_name: str,
        values: Dict[str, Any],
        user_timestamp: Optional[datetime] = None,
        timestamp: Optional[datetime] = None,
    ) -> Reading:
        """Factory a partir de un dict nombre -> valor (respeta el orden)."""
        user_ts = user_timestamp or _now()
        return cls(
            asset_name=asset_name,
            datapoints=[Datapoint(name, value) for name, value in values.items()],
            user_timestamp=user_ts,
            timestamp=timestamp or user_ts,
        )

    def numeric_values(self) -> Iterator[Tuple[str, Number]]:
        """Itera (nombre, valor) solo para datapoints enteros o float."""
        for dp in self.datapoints:
            if dp.is_numeric:
                yield dp.name, dp.value

    def find(self, name: str) -> Optional[Datapoint]:
        """Último datapoint con ese nombre, o None."""
        found = None
        for dp in self.datapoints:
            if dp.name == name:
                found = dp
        return found

    def copy(self) -> Reading:
        """Copia independiente (los datapoints no se comparten)."""
        return copy.deepcopy(self)

    def values(self) -> Dict[str, Any]:
        return {dp.name: dp.value for dp in self.datapoints}

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a formato JSON serializable."""
        return {
            "asset_code": self.asset_name,
            "user_ts": self.user_timestamp.isoformat(),
            "ts": self.timestamp.isoformat(),
            "readings": self.values(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Reading:
        """Construye una lectura desde el formato de `to_dict`.

        Acepta timestamps ISO-8601 (con o sin sufijo Z; sin offset se
        interpretan como UTC) o epoch en segundos.
        """
        user_ts = _parse_timestamp(data.get("user_ts"))
        ts = _parse_timestamp(data.get("ts")) if data.get("ts") is not None else user_ts
        return cls.from_values(
            data["asset_code"],
            dict(data.get("readings") or {}),
            user_timestamp=user_ts,
            timestamp=ts,
        )


def _parse_timestamp(value: Any) -> datetime:
    if value is None:
        return _now()
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    # Sin offset se asume UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
