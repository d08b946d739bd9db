from dataclasses import dataclass
from decimal import Decimal

from energy_alerts.schemas.pricing import PricingTier


@dataclass
class TierLine:
    """Units consumed and cost charged within one tier."""

    tier_index: int
    units: Decimal
    rate: Decimal
    cost: Decimal


def breakdown(total_consumption: Decimal, tiers: list[PricingTier]) -> list[TierLine]:
    """Split consumption across tiers in the order given.

    Each tier absorbs ``min(remaining, tier.limit)`` units; a tier without a
    limit absorbs whatever remains. Tiers are not sorted: callers supply them
    in ascending order.
    """
    lines: list[TierLine] = []
    remaining = total_consumption

    for index, tier in enumerate(tiers):
        if remaining <= 0:
            break

        units = remaining if tier.limit is None else min(remaining, tier.limit)
        lines.append(
            TierLine(tier_index=index, units=units, rate=tier.rate, cost=units * tier.rate)
        )
        remaining -= units

    return lines


def calculate(total_consumption: Decimal, tiers: list[PricingTier]) -> Decimal:
    return sum((line.cost for line in breakdown(total_consumption, tiers)), Decimal(0))


def effective_rate(total_consumption: Decimal, tiers: list[PricingTier]) -> Decimal:
    """Blended per-unit rate; the first tier's rate when nothing was consumed."""
    if total_consumption <= 0:
        return tiers[0].rate if tiers else Decimal(0)
    return calculate(total_consumption, tiers) / total_consumption
