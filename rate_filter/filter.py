"""Filtro de tasa variable disparado por expresiones.

Sin disparar, promedia las lecturas a la tasa configurada y guarda un
buffer corto de pre-trigger. Cuando la expresión de trigger se cumple,
envía el buffer y pasa a reenviar todas las lecturas sin modificar hasta
que se cumple la expresión de untrigger.

El estado (disparado o no) es global al filtro, no por asset.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from common.config import get_settings

from .config import RateFilterConfig
from .core.domain import Reading
from .errors import ExpressionError
from .expression import CompiledExpression, check_syntax, compile_expression
from .filter_stats import RateFilterStats
from .pipeline import AverageAccumulator, ExclusionList, PretriggerBuffer

logger = logging.getLogger(__name__)


class FilterState(str, Enum):
    """Estados del filtro."""
    UNTRIGGERED = "untriggered"
    TRIGGERED = "triggered"


class ExpressionStatus(str, Enum):
    """Estado de las expresiones compiladas.

    PENDING_REBUILD: hubo reconfiguración; el próximo ingest descarta las
    expresiones y las recompila con la primera lectura de *ese* batch.
    """
    UNCOMPILED = "uncompiled"
    PENDING_REBUILD = "pending_rebuild"
    COMPILED = "compiled"


ConfigSource = Union[str, Mapping[str, Any], RateFilterConfig]


class RateFilter:
    """Filtro de tasa con trigger/untrigger.

    Uso:
        rf = RateFilter("rate", RateFilterConfig(trigger="temp > 50", rate=1))

        out = []
        rf.ingest(readings, out)   # readings queda vacío

    `ingest` y `reconfigure` se serializan con un único lock.
    """

    def __init__(
        self,
        name: str,
        config: Optional[RateFilterConfig] = None,
        max_variables: Optional[int] = None,
    ):
        self.name = name
        self._lock = threading.Lock()

        self._state = FilterState.UNTRIGGERED
        self._status = ExpressionStatus.UNCOMPILED
        self._trigger: Optional[CompiledExpression] = None
        self._untrigger: Optional[CompiledExpression] = None

        self._buffer = PretriggerBuffer()
        self._accumulator = AverageAccumulator()
        self._exclusions = ExclusionList()
        self._stats = RateFilterStats()
        if max_variables is None:
            max_variables = get_settings().max_expression_variables
        self._max_variables = max_variables

        self._handlers: Dict[FilterState, Callable[[Reading, List[Reading]], None]] = {
            FilterState.UNTRIGGERED: self._untriggered_step,
            FilterState.TRIGGERED: self._triggered_step,
        }

        config = config or RateFilterConfig()
        self._validate(config)
        self._apply(config)

        logger.info(
            "RateFilter '%s' initialized: trigger='%s', untrigger='%s', "
            "pre_trigger=%dms, rate=%d %s",
            name,
            config.trigger,
            config.untrigger_expression,
            config.pre_trigger_ms,
            config.rate,
            config.rate_unit.value,
        )

    @classmethod
    def from_category(cls, name: str, category: Union[str, Mapping[str, Any]], **kwargs) -> "RateFilter":
        return cls(name, RateFilterConfig.from_category(category), **kwargs)

    # -------------------------------------------------------------------------
    # Estado
    # -------------------------------------------------------------------------

    @property
    def state(self) -> FilterState:
        with self._lock:
            return self._state

    @property
    def expression_status(self) -> ExpressionStatus:
        with self._lock:
            return self._status

    @property
    def config(self) -> RateFilterConfig:
        with self._lock:
            return self._config

    @property
    def trigger_expression(self) -> Optional[CompiledExpression]:
        with self._lock:
            return self._trigger

    @property
    def untrigger_expression(self) -> Optional[CompiledExpression]:
        with self._lock:
            return self._untrigger

    @property
    def buffered(self) -> int:
        """Lecturas actualmente en el buffer de pre-trigger."""
        with self._lock:
            return len(self._buffer)

    # -------------------------------------------------------------------------
    # Ingesta
    # -------------------------------------------------------------------------

    def ingest(self, readings: List[Reading], out: List[Reading]) -> None:
        """Procesa un batch de lecturas.

        Args:
            readings: Lecturas de entrada; se vacía al terminar
            out: Lista de salida donde se añaden lecturas reenviadas,
                copias del buffer de pre-trigger y promedios

        Raises:
            ExpressionError: Si las expresiones no compilan contra la
                primera lectura del batch (el batch queda intacto)
        """
        with self._lock:
            if self._status == ExpressionStatus.PENDING_REBUILD:
                self._trigger = None
                self._untrigger = None
                self._status = ExpressionStatus.UNCOMPILED

            if not readings:
                return

            if self._status == ExpressionStatus.UNCOMPILED:
                self._compile(readings[0])

            self._stats.received += len(readings)
            index = 0
            while index < len(readings):
                reading = readings[index]
                index += 1
                self._handlers[self._state](reading, out)
            readings.clear()

    def process(self, readings: List[Reading]) -> List[Reading]:
        """Variante funcional de `ingest`; no modifica la lista recibida."""
        out: List[Reading] = []
        self.ingest(list(readings), out)
        return out

    def _compile(self, sample: Reading) -> None:
        config = self._config
        try:
            trigger = compile_expression(config.trigger, sample, self._max_variables)
            untrigger = compile_expression(
                config.untrigger_expression, sample, self._max_variables
            )
        except ExpressionError as e:
            logger.error("RateFilter '%s': cannot compile expressions: %s", self.name, e)
            raise

        self._trigger = trigger
        self._untrigger = untrigger
        self._status = ExpressionStatus.COMPILED
        self._stats.rebuilds += 1
        logger.info(
            "RateFilter '%s': expressions compiled from asset '%s' (%d variables)",
            self.name,
            sample.asset_name,
            len(trigger.bindings),
        )

    def _untriggered_step(self, reading: Reading, out: List[Reading]) -> None:
        if self._exclusions.is_excluded(reading.asset_name):
            out.append(reading)
            self._stats.forwarded += 1
            return

        if self._trigger.evaluate(reading):
            self._transition(FilterState.TRIGGERED)
            self._accumulator.reset()
            pretrigger = self._buffer.flush_filtered(reading)
            out.extend(pretrigger)
            out.append(reading)
            self._stats.buffered_forwarded += len(pretrigger)
            self._stats.forwarded += 1
            return

        self._buffer.push(reading)
        if self._accumulator.enabled:
            average = self._accumulator.add(reading)
            if average is not None:
                out.append(average)
                self._stats.averaged += 1
        # La lectura original nunca se reenvía sin disparar
        self._stats.dropped += 1

    def _triggered_step(self, reading: Reading, out: List[Reading]) -> None:
        out.append(reading)
        self._stats.forwarded += 1
        if self._untrigger.evaluate(reading):
            self._transition(FilterState.UNTRIGGERED)

    def _transition(self, new_state: FilterState) -> None:
        logger.info(
            "RateFilter '%s': %s -> %s",
            self.name,
            self._state.name,
            new_state.name,
        )
        if new_state == FilterState.TRIGGERED:
            self._stats.triggers += 1
        else:
            self._stats.untriggers += 1
        self._state = new_state

    # -------------------------------------------------------------------------
    # Configuración
    # -------------------------------------------------------------------------

    def reconfigure(self, new_config: ConfigSource) -> None:
        """Aplica una nueva configuración.

        Las expresiones no se recompilan aquí: se marcan para
        recompilación en el próximo `ingest`.

        Raises:
            ConfigurationError: Valores inválidos o expresión con error de
                sintaxis; en ese caso no se aplica ningún cambio
        """
        with self._lock:
            if isinstance(new_config, RateFilterConfig):
                config = new_config
            else:
                config = RateFilterConfig.from_category(new_config, previous=self._config)
            self._validate(config)
            self._apply(config)
            self._status = ExpressionStatus.PENDING_REBUILD
            logger.info(
                "RateFilter '%s' reconfigured: trigger='%s', untrigger='%s', "
                "pre_trigger=%dms, rate=%d %s, exclusions=%d",
                self.name,
                config.trigger,
                config.untrigger_expression,
                config.pre_trigger_ms,
                config.rate,
                config.rate_unit.value,
                len(config.exclusions),
            )

    @staticmethod
    def _validate(config: RateFilterConfig) -> None:
        # Solo sintaxis: los identificadores se resuelven al compilar con
        # la primera lectura. Un trigger vacío falla al compilar en ingest.
        if config.trigger:
            check_syntax(config.trigger)
        if config.untrigger:
            check_syntax(config.untrigger)

    def _apply(self, config: RateFilterConfig) -> None:
        self._config = config
        self._buffer.window_ms = config.pre_trigger_ms
        self._buffer.filter_datapoint = config.pretrigger_filter or None
        self._accumulator.interval = config.rate_interval
        self._exclusions.replace(config.exclusions)

    def shutdown(self) -> None:
        """Libera buffer, acumulador y expresiones."""
        with self._lock:
            self._buffer.clear()
            self._accumulator.reset()
            self._trigger = None
            self._untrigger = None
            self._status = ExpressionStatus.UNCOMPILED
            logger.info("RateFilter '%s' shutdown: %s", self.name, self._stats)

    def get_stats(self) -> dict:
        """Estadísticas del filtro."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "expression_status": self._status.value,
                "buffered": len(self._buffer),
                **self._stats.to_dict(),
                "config": self._config.summary(),
            }
