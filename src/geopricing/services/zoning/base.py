"""Base classes for zone matching strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ...models.domain import DriveTimeOptions, Location, Zone, ZoneKind
from ..routing.drive_time import DriveTimeResolver


@dataclass(slots=True)
class MatchContext:
    """Everything a predicate may need about the customer being priced."""

    customer: Location
    drive_time_resolver: Optional[DriveTimeResolver] = None
    drive_time_options: DriveTimeOptions = field(default_factory=DriveTimeOptions)


@dataclass(slots=True)
class PredicateResult:
    matched: bool
    details: dict[str, Any] = field(default_factory=dict)


class ZoneStrategy(ABC):
    """Contract for one zone kind's membership predicate."""

    kind: ZoneKind

    @abstractmethod
    async def matches(self, zone: Zone, context: MatchContext) -> PredicateResult:
        raise NotImplementedError
