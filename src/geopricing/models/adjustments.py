"""Price adjustment variants.

Each zone carries exactly one adjustment kind. Callers never branch on the
kind: they call :meth:`Adjustment.apply` on a price (or
:meth:`Adjustment.apply_to_rate` on a per-unit rate) and get the adjusted
``Decimal`` back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar, Literal, Union

AdjustmentType = Literal["percentage", "fixed", "multiplier"]

HUNDRED = Decimal("100")


def to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    """Convert to ``Decimal`` through ``str`` so binary float noise never leaks in."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True, slots=True)
class Adjustment(ABC):
    value: Decimal
    kind: ClassVar[AdjustmentType] = "percentage"

    @abstractmethod
    def apply(self, price: Decimal) -> Decimal:
        raise NotImplementedError

    def apply_to_rate(self, rate: Decimal) -> Decimal:
        return self.apply(rate)

    def with_value(self, value: Decimal) -> "Adjustment":
        return type(self)(to_decimal(value))

    @property
    def is_neutral(self) -> bool:
        return self.apply(Decimal("1")) == Decimal("1")

    def describe(self) -> str:
        return f"{self.kind} {self.value}"


@dataclass(frozen=True, slots=True)
class PercentageAdjustment(Adjustment):
    kind: ClassVar[AdjustmentType] = "percentage"

    def apply(self, price: Decimal) -> Decimal:
        return price * (Decimal("1") + self.value / HUNDRED)

    def describe(self) -> str:
        return f"{self.value:+}%"


@dataclass(frozen=True, slots=True)
class FixedAdjustment(Adjustment):
    kind: ClassVar[AdjustmentType] = "fixed"

    def apply(self, price: Decimal) -> Decimal:
        return price + self.value

    def apply_to_rate(self, rate: Decimal) -> Decimal:
        # A flat amount is charged per service, not per unit.
        return rate

    @property
    def is_neutral(self) -> bool:
        return self.value == 0

    def describe(self) -> str:
        return f"{self.value:+} flat"


@dataclass(frozen=True, slots=True)
class MultiplierAdjustment(Adjustment):
    kind: ClassVar[AdjustmentType] = "multiplier"

    def apply(self, price: Decimal) -> Decimal:
        return price * self.value

    def describe(self) -> str:
        return f"x{self.value}"


_ADJUSTMENT_TYPES: dict[str, type[Adjustment]] = {
    "percentage": PercentageAdjustment,
    "fixed": FixedAdjustment,
    "multiplier": MultiplierAdjustment,
}


def make_adjustment(kind: str, value: Union[Decimal, float, int, str]) -> Adjustment:
    try:
        adjustment_cls = _ADJUSTMENT_TYPES[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown adjustment type '{kind}'.") from exc
    return adjustment_cls(to_decimal(value))


def neutral_adjustment() -> Adjustment:
    return PercentageAdjustment(Decimal("0"))
