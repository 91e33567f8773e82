"""Filtro de tasa variable con trigger/untrigger para pipelines de lecturas.

Estructura:
- core/domain/  → Lectura y datapoints
- expression/   → Parser y evaluación de expresiones de trigger
- pipeline/     → Buffer de pre-trigger, promedios y exclusiones
- filter.py     → Máquina de estados del filtro
- plugin.py     → Interfaz de plugin (init/ingest/reconfigure/shutdown)
"""

__version__ = "1.0.0"

from .config import RateFilterConfig, rate_to_interval
from .config_models import RateUnit
from .core.domain import Datapoint, Reading
from .errors import ConfigurationError, ExpressionError, RateFilterError
from .filter import ExpressionStatus, FilterState, RateFilter

__all__ = [
    "ConfigurationError",
    "Datapoint",
    "ExpressionError",
    "ExpressionStatus",
    "FilterState",
    "RateFilter",
    "RateFilterConfig",
    "RateFilterError",
    "RateUnit",
    "Reading",
    "rate_to_interval",
]
