from enum import Enum


class PricingType(str, Enum):
    FIXED = "fixed"
    FLEXIBLE = "flexible"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class DiscountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class ActionResultType(str, Enum):
    DISCOUNT = "discount"
    TRANSACTION = "transaction"
