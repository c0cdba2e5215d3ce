from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.imports import PricingType


class ProductPriceDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    pricing_type: PricingType = PricingType.FIXED
    price: Decimal = Field(ge=0)
    promo_price: Decimal | None = Field(default=None, ge=0)
    min_price: Decimal | None = Field(default=None, ge=0)
    max_price: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "ProductPriceDescriptor":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class ShopDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    currency: str | None = None
    name: str | None = None
