from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schemas.imports import DiscountType


class Discount(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    code: str
    name: str = ""
    discount_type: DiscountType
    discount_value: Decimal = Field(ge=0)
    status: str
    starts_at: datetime
    ends_at: datetime
    max_uses: int = Field(ge=0)
    current_uses: int = Field(default=0, ge=0)
    is_valid: bool = True
