from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

from babel import Locale
from babel.numbers import format_currency

from schemas.discount import Discount
from schemas.imports import PricingType
from schemas.product import ProductPriceDescriptor
from services.currency_service import fraction_digits
from services.discount_service import apply_amount

DEFAULT_LOCALE = "fr_FR"
_ZERO = Decimal(0)


@dataclass(frozen=True)
class PriceCalculation:
    base_price: Decimal
    original_price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    currency: str
    display_price: str
    display_original_price: str
    savings_percentage: int
    price_range: tuple[Decimal, Decimal] | None = None

    @property
    def has_discount(self) -> bool:
        return self.discount_amount > 0

    def to_dict(self) -> dict:
        return {
            "base_price": str(self.base_price),
            "original_price": str(self.original_price),
            "discount_amount": str(self.discount_amount),
            "final_price": str(self.final_price),
            "currency": self.currency,
            "display_price": self.display_price,
            "display_original_price": self.display_original_price,
            "savings_percentage": self.savings_percentage,
            "price_range": [str(bound) for bound in self.price_range] if self.price_range else None,
        }


def quantize(amount: Decimal, currency: str) -> Decimal:
    exponent = Decimal(1).scaleb(-fraction_digits(currency))
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


@lru_cache(maxsize=32)
def _currency_pattern(locale: str, digits: int) -> str:
    pattern = Locale.parse(locale).currency_formats["standard"].pattern
    fraction = "." + "0" * digits if digits else ""
    return re.sub(r"\.0+", fraction, pattern)


def format_price(amount: Decimal, currency: str, locale: str = DEFAULT_LOCALE) -> str:
    return format_currency(
        amount,
        currency,
        format=_currency_pattern(locale, fraction_digits(currency)),
        locale=locale,
        currency_digits=False,
    )


def _base_and_original(product: ProductPriceDescriptor) -> tuple[Decimal, Decimal, tuple[Decimal, Decimal] | None]:
    if product.pricing_type == PricingType.FLEXIBLE:
        minimum = product.min_price if product.min_price is not None else product.price
        maximum = product.max_price if product.max_price is not None else minimum
        return minimum, minimum, (minimum, maximum)

    if product.promo_price is not None and product.promo_price < product.price:
        return product.promo_price, product.price, None
    return product.price, product.price, None


def compute(
    product: ProductPriceDescriptor,
    discount: Discount | None,
    target_currency: str,
    rate: Decimal,
    *,
    locale: str = DEFAULT_LOCALE,
) -> PriceCalculation:
    """Price breakdown of `product` in `target_currency`.

    `rate` converts the shop currency the product is priced in into the target
    currency. Amounts are converted before the discount is taken off, so a
    fixed-amount discount is clamped against the converted base. A promo
    price counts toward `savings_percentage`.
    """
    currency = target_currency.strip().upper()
    base, original, price_range = _base_and_original(product)

    base_price = quantize(base * rate, currency)
    original_price = quantize(original * rate, currency)
    discount_amount = _ZERO
    if discount is not None:
        discount_amount = quantize(apply_amount(discount, base_price, rate), currency)
    final_price = max(_ZERO, base_price - discount_amount)

    savings_percentage = 0
    if original_price > 0 and original_price > final_price:
        ratio = Decimal(100) * (original_price - final_price) / original_price
        savings_percentage = int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    converted_range = None
    if price_range is not None:
        converted_range = (quantize(price_range[0] * rate, currency), quantize(price_range[1] * rate, currency))

    return PriceCalculation(
        base_price=base_price,
        original_price=original_price,
        discount_amount=discount_amount,
        final_price=final_price,
        currency=currency,
        display_price=format_price(final_price, currency, locale),
        display_original_price=format_price(original_price, currency, locale),
        savings_percentage=savings_percentage,
        price_range=converted_range,
    )
