"""Project configuration and the conversions the contracts need."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from contracting.stdlib.bridge.time import Datetime

from greenbond.errors import InvalidConfig, InvalidMilestones

BPS_DENOMINATOR = 10_000
PRICE_SCALE = 10**18
MAX_UINT128 = 2**128 - 1


@dataclass(frozen=True)
class MilestoneSpec:
    threshold: int        # cumulative kWh that unlocks this tranche
    release_bps: int      # share of total raised, in basis points


@dataclass(frozen=True)
class ProjectConfig:
    """Construction parameters of one bond project.

    Field order follows the positional constructor of the escrow:
    issuer, oracle address, name, symbol, cap, price, sale window,
    thresholds, bps, maturity and yield. Nothing here changes after the
    project is deployed.
    """

    issuer: str
    oracle_address: str
    name: str
    symbol: str
    cap_tokens: int
    price_wei_per_token: int
    sale_start: datetime
    sale_end: datetime
    thresholds: tuple[int, ...]
    bps: tuple[int, ...]
    maturity_months: int = 12
    annual_yield_bps: int = 0
    description: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        # Lists are accepted for convenience but stored immutably
        object.__setattr__(self, "thresholds", tuple(self.thresholds))
        object.__setattr__(self, "bps", tuple(self.bps))

    @classmethod
    def from_milestones(
        cls, milestones: Sequence[MilestoneSpec | tuple[int, int]], **kwargs: Any
    ) -> "ProjectConfig":
        pairs = [m if isinstance(m, MilestoneSpec) else MilestoneSpec(*m) for m in milestones]
        return cls(
            thresholds=tuple(m.threshold for m in pairs),
            bps=tuple(m.release_bps for m in pairs),
            **kwargs,
        )

    @property
    def milestones(self) -> tuple[MilestoneSpec, ...]:
        return tuple(MilestoneSpec(t, b) for t, b in zip(self.thresholds, self.bps))

    def validate(self) -> "ProjectConfig":
        """Raise before anything is deployed; the escrow re-checks on chain."""
        if not self.issuer:
            raise InvalidConfig("InvalidConfig: issuer cannot be empty.")
        if not 0 < self.cap_tokens <= MAX_UINT128:
            raise InvalidConfig("InvalidConfig: cap_tokens must be a positive u128.")
        if self.price_wei_per_token <= 0:
            raise InvalidConfig("InvalidConfig: price must be positive.")
        if self.sale_end <= self.sale_start:
            raise InvalidConfig("InvalidConfig: sale must end after it starts.")
        if self.maturity_months < 0 or self.annual_yield_bps < 0:
            raise InvalidConfig("InvalidConfig: maturity and yield cannot be negative.")
        validate_milestones(self.thresholds, self.bps)
        return self

    def cost_of(self, token_amount: int) -> int:
        """Exact payment, in wei, that ``invest(token_amount)`` requires."""
        return token_amount * self.price_wei_per_token // PRICE_SCALE

    def constructor_args(self, *, oracle: str, token: str, payment_token: str) -> dict[str, Any]:
        return {
            "issuer": self.issuer,
            "oracle_address": oracle,
            "name": self.name,
            "symbol": self.symbol,
            "cap_tokens": self.cap_tokens,
            "price_wei_per_token": self.price_wei_per_token,
            "sale_start": to_contract_time(self.sale_start),
            "sale_end": to_contract_time(self.sale_end),
            "thresholds": list(self.thresholds),
            "bps": list(self.bps),
            "maturity_months": self.maturity_months,
            "annual_yield_bps": self.annual_yield_bps,
            "token": token,
            "payment_token": payment_token,
        }


def validate_milestones(thresholds: Sequence[int], bps: Sequence[int]) -> None:
    if not thresholds:
        raise InvalidMilestones("InvalidMilestones: at least one milestone is required.")
    if len(thresholds) != len(bps):
        raise InvalidMilestones("InvalidMilestones: thresholds and bps differ in length.")
    for index, (threshold, share) in enumerate(zip(thresholds, bps)):
        if threshold < 0:
            raise InvalidMilestones(f"InvalidMilestones: threshold {index} is negative.")
        if share <= 0:
            raise InvalidMilestones(f"InvalidMilestones: release share {index} must be positive.")
    total = sum(bps)
    if total != BPS_DENOMINATOR:
        raise InvalidMilestones(
            f"InvalidMilestones: release shares sum to {total}, expected {BPS_DENOMINATOR}."
        )


def to_contract_time(value: datetime | Datetime) -> Datetime:
    if isinstance(value, Datetime):
        return value
    return Datetime(
        year=value.year,
        month=value.month,
        day=value.day,
        hour=value.hour,
        minute=value.minute,
        second=value.second,
        microsecond=value.microsecond,
    )


def from_contract_time(value: Datetime | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(
        value.year, value.month, value.day, value.hour, value.minute, value.second, value.microsecond
    )
