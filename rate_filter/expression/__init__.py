"""Expresiones de trigger/untrigger."""

from .bindings import DEFAULT_CAPACITY, VariableBindings
from .evaluator import CompiledExpression, check_syntax, compile_expression, negate

__all__ = [
    "CompiledExpression",
    "DEFAULT_CAPACITY",
    "VariableBindings",
    "check_syntax",
    "compile_expression",
    "negate",
]
