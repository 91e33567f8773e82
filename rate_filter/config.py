"""Configuración del filtro de tasa.

La configuración llega como una categoría JSON (texto u objeto ya
decodificado). Cada item puede ser un string plano o un objeto con
`value` (o `default` si no hay valor):

    {"trigger": {"value": "temperature > 50", "default": ""}, "rate": "2"}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .config_models import ExclusionsPayload, FilterCategoryPayload, RateUnit
from .errors import ConfigurationError
from .expression import negate

logger = logging.getLogger(__name__)

# Segundos por unidad para las unidades que se truncan a segundos enteros
_SECONDS_PER_UNIT = {
    RateUnit.PER_MINUTE: 60,
    RateUnit.PER_HOUR: 60 * 60,
    RateUnit.PER_DAY: 24 * 60 * 60,
}


def rate_to_interval(rate: int, unit: RateUnit) -> timedelta:
    """Convierte la tasa reducida a intervalo entre promedios.

    - rate 0 → intervalo 0 (promediado deshabilitado)
    - per second → 1_000_000 // rate microsegundos
    - per minute/hour/day → (60|3600|86400) // rate segundos (división
      entera: 7 por minuto da 8 segundos)
    """
    if rate == 0:
        return timedelta(0)
    unit = RateUnit(unit)
    if unit == RateUnit.PER_SECOND:
        return timedelta(microseconds=1_000_000 // rate)
    return timedelta(seconds=_SECONDS_PER_UNIT[unit] // rate)


@dataclass(frozen=True)
class RateFilterConfig:
    """Configuración efectiva del filtro."""
    trigger: str = ""
    untrigger: str = ""
    pre_trigger_ms: int = 1
    rate: int = 0
    rate_unit: RateUnit = RateUnit.PER_SECOND
    pretrigger_filter: str = ""
    exclusions: Tuple[str, ...] = ()
    enabled: bool = False

    @property
    def rate_interval(self) -> timedelta:
        return rate_to_interval(self.rate, self.rate_unit)

    @property
    def untrigger_expression(self) -> str:
        """Untrigger configurado o la negación del trigger."""
        if self.untrigger:
            return self.untrigger
        return negate(self.trigger)

    @classmethod
    def from_category(
        cls,
        category: Union[str, Mapping[str, Any]],
        previous: Optional["RateFilterConfig"] = None,
    ) -> "RateFilterConfig":
        """Construye la configuración desde una categoría.

        Args:
            category: Texto JSON u objeto con los items de la categoría
            previous: Configuración anterior; sus exclusiones se conservan
                si el campo `exclusions` falta o está mal formado

        Raises:
            ConfigurationError: JSON inválido o valores fuera de rango
        """
        values = flatten_category(category)
        try:
            payload = FilterCategoryPayload.model_validate(values)
        except ValidationError as e:
            errors = e.errors()
            field = ".".join(str(p) for p in errors[0]["loc"]) if errors else None
            raise ConfigurationError(
                errors[0]["msg"] if errors else str(e), field=field
            ) from e

        current = previous.exclusions if previous is not None else ()
        return cls(
            trigger=payload.trigger,
            untrigger=payload.untrigger,
            pre_trigger_ms=payload.pre_trigger,
            rate=payload.rate,
            rate_unit=payload.rate_unit,
            pretrigger_filter=payload.pretrigger_filter,
            exclusions=parse_exclusions(payload.exclusions, current),
            enabled=payload.enable,
        )

    def summary(self) -> Dict[str, Any]:
        interval = self.rate_interval
        return {
            "trigger": self.trigger,
            "untrigger": self.untrigger_expression,
            "pre_trigger_ms": self.pre_trigger_ms,
            "rate": self.rate,
            "rate_unit": self.rate_unit.value,
            "rate_interval_seconds": interval.total_seconds(),
            "pretrigger_filter": self.pretrigger_filter,
            "exclusions": list(self.exclusions),
        }


def flatten_category(category: Union[str, Mapping[str, Any]]) -> Dict[str, Any]:
    """Reduce cada item de la categoría a su valor."""
    if isinstance(category, (str, bytes)):
        try:
            category = json.loads(category)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid configuration JSON: {e}") from e
    if not isinstance(category, Mapping):
        raise ConfigurationError("Configuration must be a JSON object")

    values: Dict[str, Any] = {}
    for key, item in category.items():
        if isinstance(item, Mapping):
            if "value" in item:
                values[key] = item["value"]
            elif "default" in item:
                values[key] = item["default"]
        else:
            values[key] = item
    return values


def parse_exclusions(raw: Any, current: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    """Parsea el campo `exclusions`.

    Si falta devuelve `current` sin más. Si está mal formado se registra
    el error y también se devuelve `current`; nunca es fatal.
    """
    if raw is None:
        return current
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        payload = ExclusionsPayload.model_validate(data)
    except json.JSONDecodeError as e:
        logger.error(
            "EXCLUSIONS_MALFORMED Error parsing the exclusions element, "
            "it should be an array of strings: %s",
            e,
        )
        return current
    except ValidationError as e:
        logger.error(
            "EXCLUSIONS_MALFORMED The exclusions element should be an array of strings (%d errors)",
            e.error_count(),
        )
        return current
    return tuple(payload.exclusions)
