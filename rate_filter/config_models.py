"""Modelos de validación para la categoría de configuración del filtro.

Extraído de config.py: aquí solo viven los schemas pydantic y enums.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class RateUnit(str, Enum):
    """Unidades de la tasa reducida."""
    PER_SECOND = "per second"
    PER_MINUTE = "per minute"
    PER_HOUR = "per hour"
    PER_DAY = "per day"


class FilterCategoryPayload(BaseModel):
    """Schema de los valores de la categoría (ya aplanados a str).

    Formato esperado:
    {
        "trigger": "temperature > 50",
        "untrigger": "temperature < 45",
        "preTrigger": "1000",
        "rate": "2",
        "rateUnit": "per minute",
        "pretriggerFilter": "mode",
        "exclusions": "{\\"exclusions\\": [\\"pump1\\"]}",
        "enable": "true"
    }
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    trigger: str = ""
    untrigger: str = ""
    pre_trigger: int = Field(default=1, ge=0, alias="preTrigger")
    rate: int = Field(default=0, ge=0)
    rate_unit: RateUnit = Field(default=RateUnit.PER_SECOND, alias="rateUnit")
    pretrigger_filter: str = Field(default="", alias="pretriggerFilter")
    exclusions: Any = None
    enable: bool = False

    @field_validator("trigger", "untrigger", "pretrigger_filter", mode="before")
    @classmethod
    def strip_text(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("pre_trigger", "rate", mode="before")
    @classmethod
    def blank_integer_is_default(cls, v, info):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return 1 if info.field_name == "pre_trigger" else 0
        return v

    @field_validator("rate_unit", mode="before")
    @classmethod
    def normalize_unit(cls, v):
        if isinstance(v, str):
            return v.strip().lower() or RateUnit.PER_SECOND.value
        return v

    @field_validator("enable", mode="before")
    @classmethod
    def parse_enable(cls, v):
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes")
        return v


class ExclusionsPayload(BaseModel):
    """Contenido del campo `exclusions`: {"exclusions": ["asset1", ...]}."""

    exclusions: List[StrictStr]
