"""Interfaz de plugin de filtro para el filtro de tasa.

Ciclo de vida:
    handle = plugin_init(config, output_handle, output_stream)
    plugin_ingest(handle, readings)        # N veces
    plugin_reconfigure(handle, new_config) # en caliente
    plugin_shutdown(handle)

`output_stream(output_handle, readings)` recibe el batch resultante, que
puede estar vacío.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from . import __version__
from .asset_tracker import get_asset_tracker
from .config import flatten_category
from .core.domain import Reading
from .filter import RateFilter

logger = logging.getLogger(__name__)

FILTER_NAME = "rate"
TRACKING_EVENT = "Filter"

OutputStream = Callable[[Any, List[Reading]], None]

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "plugin": {
        "description": "Variable readings collection rate filter",
        "type": "string",
        "default": FILTER_NAME,
        "readonly": "true",
    },
    "enable": {
        "description": "A switch that can be used to enable or disable execution of the rate filter.",
        "type": "boolean",
        "displayName": "Enabled",
        "default": "false",
    },
    "trigger": {
        "description": "Expression to trigger full rate collection",
        "type": "string",
        "default": "",
        "order": "1",
        "displayName": "Trigger expression",
    },
    "untrigger": {
        "description": "Expression to trigger end of full rate collection",
        "type": "string",
        "default": "",
        "order": "2",
        "displayName": "End Expression",
    },
    "preTrigger": {
        "description": "The amount of data to send prior to the trigger firing, expressed in milliseconds",
        "type": "integer",
        "default": "1",
        "order": "3",
        "displayName": "Pre-trigger time (mS)",
    },
    "rate": {
        "description": "The reduced rate at which data must be sent",
        "type": "integer",
        "default": "0",
        "order": "4",
        "displayName": "Reduced collection rate",
    },
    "rateUnit": {
        "description": "The unit used to evaluate the reduced rate",
        "type": "enumeration",
        "options": ["per second", "per minute", "per hour", "per day"],
        "default": "per second",
        "order": "5",
        "displayName": "Rate Units",
    },
    "exclusions": {
        "description": "A set of asset names that are excluded from the rate limit processing and always sent at full rate",
        "type": "JSON",
        "default": '{"exclusions": []}',
        "order": "6",
        "displayName": "Exclusions",
    },
    "pretriggerFilter": {
        "description": "Only send pre-trigger readings whose value for this datapoint matches the triggering reading",
        "type": "string",
        "default": "",
        "order": "7",
        "displayName": "Pre-trigger filter datapoint",
    },
}


@dataclass
class FilterHandle:
    """Handle opaco devuelto por `plugin_init`."""
    filter: RateFilter
    category_name: str
    enabled: bool
    output_handle: Any
    output_stream: OutputStream


def plugin_info() -> Dict[str, Any]:
    """Información del plugin."""
    return {
        "name": FILTER_NAME,
        "version": __version__,
        "flags": 0,
        "type": "filter",
        "interface": "1.0.0",
        "config": copy.deepcopy(DEFAULT_CONFIG),
    }


def plugin_init(
    config: Union[str, Mapping[str, Any], None],
    output_handle: Any,
    output_stream: OutputStream,
    category_name: Optional[str] = None,
) -> FilterHandle:
    """Crea el filtro; se llama antes de cualquier ingesta.

    Args:
        config: Categoría de configuración (texto JSON u objeto). Los
            items ausentes toman el default de DEFAULT_CONFIG
        output_handle: Se pasa tal cual a `output_stream`
        output_stream: Función que recibe el batch filtrado
        category_name: Nombre de la categoría para asset tracking

    Raises:
        ConfigurationError: Si la configuración es inválida
    """
    values = flatten_category(DEFAULT_CONFIG)
    if config is not None:
        values.update(flatten_category(config))

    rate_filter = RateFilter.from_category(FILTER_NAME, values)
    handle = FilterHandle(
        filter=rate_filter,
        category_name=category_name or FILTER_NAME,
        enabled=rate_filter.config.enabled,
        output_handle=output_handle,
        output_stream=output_stream,
    )
    logger.info(
        "Plugin '%s' initialized for category '%s' (enabled=%s)",
        FILTER_NAME,
        handle.category_name,
        handle.enabled,
    )
    return handle


def plugin_ingest(handle: FilterHandle, readings: List[Reading]) -> None:
    """Procesa un batch y lo pasa al siguiente eslabón de la cadena."""
    if not handle.enabled:
        # Filtro inactivo: el batch pasa sin tocar
        handle.output_stream(handle.output_handle, readings)
        return

    tracker = get_asset_tracker()
    for reading in readings:
        tracker.add(handle.category_name, reading.asset_name, TRACKING_EVENT)

    out: List[Reading] = []
    handle.filter.ingest(readings, out)

    for reading in out:
        tracker.add(handle.category_name, reading.asset_name, TRACKING_EVENT)
    handle.output_stream(handle.output_handle, out)


def plugin_reconfigure(handle: FilterHandle, new_config: Union[str, Mapping[str, Any]]) -> None:
    """Reconfigura el filtro en caliente."""
    values = flatten_category(new_config)
    handle.filter.reconfigure(values)
    handle.enabled = handle.filter.config.enabled


def plugin_shutdown(handle: FilterHandle) -> None:
    """Libera el filtro."""
    handle.filter.shutdown()
    handle.enabled = False
