"""Registry of zone strategies keyed by zone kind."""

from __future__ import annotations

from ...models.domain import ZoneKind
from .base import ZoneStrategy
from .strategies import (
    CityZoneStrategy,
    DriveTimeZoneStrategy,
    PolygonZoneStrategy,
    RadiusZoneStrategy,
    ZipcodeZoneStrategy,
)

_STRATEGIES: dict[ZoneKind, ZoneStrategy] = {
    strategy.kind: strategy
    for strategy in (
        RadiusZoneStrategy(),
        DriveTimeZoneStrategy(),
        PolygonZoneStrategy(),
        ZipcodeZoneStrategy(),
        CityZoneStrategy(),
    )
}


def get_strategy(kind: ZoneKind | str) -> ZoneStrategy:
    try:
        return _STRATEGIES[ZoneKind(kind)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown zone kind '{kind}'.") from exc


def register_strategy(strategy: ZoneStrategy) -> None:
    """Install or replace the predicate for ``strategy.kind``."""
    _STRATEGIES[strategy.kind] = strategy
