"""Compilación y evaluación de expresiones de trigger.

Uso:
    expr = compile_expression("temperature > 50", first_reading)
    if expr.evaluate(reading):
        ...
"""

from __future__ import annotations

import logging

from ..core.domain import Reading
from ..errors import ExpressionError
from .bindings import DEFAULT_CAPACITY, VariableBindings
from .parser import CONSTANTS, Node, iter_names, parse_expression

logger = logging.getLogger(__name__)


class CompiledExpression:
    """Expresión lista para evaluar contra lecturas.

    Cada instancia tiene su propia tabla de variables; dos expresiones
    compiladas desde la misma muestra tienen los mismos nombres pero
    valores independientes.
    """

    def __init__(self, text: str, root: Node, bindings: VariableBindings):
        self.text = text
        self._root = root
        self.bindings = bindings

    def evaluate(self, reading: Reading) -> bool:
        """Actualiza variables con la lectura y evalúa (distinto de 0 = True)."""
        self.bindings.update(reading)
        return self._root.evaluate(self.bindings.values) != 0.0

    def __repr__(self) -> str:
        return f"CompiledExpression({self.text!r}, variables={len(self.bindings)})"


def negate(expression: str) -> str:
    """Expresión negada, usada como untrigger por defecto."""
    return f"not ({expression})"


def check_syntax(expression: str) -> None:
    """Valida solo la sintaxis (los identificadores aún no se conocen).

    Raises:
        ExpressionError: Si la expresión no es sintácticamente válida
    """
    parse_expression(expression)


def compile_expression(
    expression: str,
    sample: Reading,
    capacity: int = DEFAULT_CAPACITY,
) -> CompiledExpression:
    """Compila la expresión usando los datapoints de `sample` como variables.

    Args:
        expression: Texto de la expresión
        sample: Lectura de la que se descubren las variables
        capacity: Máximo de variables registrables

    Returns:
        CompiledExpression lista para evaluar

    Raises:
        ExpressionError: Error de sintaxis o identificador desconocido
    """
    root = parse_expression(expression)
    bindings = VariableBindings.from_reading(sample, capacity)

    for name in iter_names(root):
        slot = bindings.slot(name.name)
        if slot is not None:
            name.slot = slot
            continue
        constant = CONSTANTS.get(name.name.lower())
        if constant is not None:
            name.constant = constant
            continue
        raise ExpressionError(
            expression, f"unknown identifier '{name.name}'", name.position
        )

    logger.debug(
        "Compiled expression '%s' with %d variables from asset '%s'",
        expression,
        len(bindings),
        sample.asset_name,
    )
    return CompiledExpression(expression, root, bindings)
