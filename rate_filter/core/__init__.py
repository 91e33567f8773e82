"""Core module - modelos de dominio del filtro de tasa.

Estructura:
- domain/      → Lectura y datapoints
"""
