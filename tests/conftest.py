"""Fixtures compartidas para los tests del filtro de tasa."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from rate_filter.asset_tracker import AssetTracker
from rate_filter.core.domain import Reading

BASE_TS = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_ts() -> datetime:
    return BASE_TS


@pytest.fixture
def make_reading() -> Callable[..., Reading]:
    """Factory de lecturas: make_reading(offset_ms, asset="sensor", v=1, ...)."""

    def _make(offset_ms: int = 0, asset: str = "sensor", **values: Any) -> Reading:
        ts = BASE_TS + timedelta(milliseconds=offset_ms)
        return Reading.from_values(asset, values, user_timestamp=ts)

    return _make


@pytest.fixture(autouse=True)
def _reset_asset_tracker():
    AssetTracker.reset_instance()
    yield
    AssetTracker.reset_instance()
