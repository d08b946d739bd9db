from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter


class FlatPricing(BaseModel):
    type: Literal["flat"] = "flat"
    rate: Decimal = Field(..., ge=0)


class TimeOfUsePricing(BaseModel):
    """Rate table keyed by weekend flag and hour-of-day band.

    Any band left unset falls back to ``base``.
    """

    type: Literal["time_of_use"] = "time_of_use"
    base: Decimal = Field(..., ge=0)
    peak: Decimal | None = Field(default=None, ge=0)
    mid_peak: Decimal | None = Field(default=None, ge=0)
    off_peak: Decimal | None = Field(default=None, ge=0)
    weekend: Decimal | None = Field(default=None, ge=0)


class PricingTier(BaseModel):
    limit: Decimal | None = Field(default=None, gt=0)  # None: absorbs the remainder
    rate: Decimal = Field(..., ge=0)


class TieredPricing(BaseModel):
    type: Literal["tiered"] = "tiered"
    tiers: list[PricingTier] = Field(..., min_length=1)


PricingModel = Annotated[
    FlatPricing | TimeOfUsePricing | TieredPricing,
    Field(discriminator="type"),
]

pricing_model_adapter: TypeAdapter[FlatPricing | TimeOfUsePricing | TieredPricing] = (
    TypeAdapter(PricingModel)
)
