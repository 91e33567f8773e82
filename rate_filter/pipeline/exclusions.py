"""Assets excluidos de la reducción de tasa."""

from __future__ import annotations

from typing import Iterable, Tuple


class ExclusionList:
    """Lista de assets que pasan sin promediar ni evaluar triggers."""

    def __init__(self, assets: Iterable[str] = ()):
        self._assets: Tuple[str, ...] = tuple(assets)

    def replace(self, assets: Iterable[str]) -> None:
        self._assets = tuple(assets)

    def is_excluded(self, asset_name: str) -> bool:
        return asset_name in self._assets

    def __len__(self) -> int:
        return len(self._assets)
