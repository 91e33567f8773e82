"""Excepciones del filtro de tasa.

Jerarquía:
    RateFilterError
    └── ConfigurationError
        └── ExpressionError
"""

from __future__ import annotations

from typing import Optional


class RateFilterError(Exception):
    """Base para todos los errores del filtro."""


class ConfigurationError(RateFilterError):
    """Configuración inválida (valores fuera de rango, unidad desconocida...)."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message if field is None else f"{field}: {message}")


class ExpressionError(ConfigurationError):
    """Expresión de trigger/untrigger que no compila.

    Cubre errores de sintaxis, identificadores desconocidos y
    funciones llamadas con un número incorrecto de argumentos.
    """

    def __init__(self, expression: str, reason: str, position: Optional[int] = None):
        self.expression = expression
        self.reason = reason
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Invalid expression '{expression}'{where}: {reason}")
