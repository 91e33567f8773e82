from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    # .env en el directorio de trabajo, compartido con el resto del pipeline.
    return str(Path.cwd() / ".env")


@dataclass(frozen=True)
class Settings:
    filter_name: str
    log_level: str
    max_expression_variables: int


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("RATE_FILTER_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    filter_name = os.getenv("RATE_FILTER_NAME", "rate")
    log_level = os.getenv("RATE_FILTER_LOG_LEVEL", "INFO").upper()

    # Capacidad de la tabla de variables de las expresiones (nombre simple
    # y nombre cualificado cuentan por separado).
    max_expression_variables = int(os.getenv("RATE_FILTER_MAX_VARIABLES", "20"))

    return Settings(
        filter_name=filter_name,
        log_level=log_level,
        max_expression_variables=max_expression_variables,
    )
