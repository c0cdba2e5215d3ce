from __future__ import annotations

from decimal import Decimal

from core.currency_rules import CURRENCY_FRACTION_DIGITS, DEFAULT_FRACTION_DIGITS, PEG_RATES

IDENTITY_RATE = Decimal(1)


def _normalize(currency: str | None) -> str:
    return (currency or "").strip().upper()


def rate(from_currency: str | None, to_currency: str | None) -> Decimal:
    """Multiplicative factor from one currency to another.

    Only the fixed pegs in `PEG_RATES` are known. Any other pair, including
    unknown or missing codes, converts at 1: this is not an FX feed.
    """
    source = _normalize(from_currency)
    target = _normalize(to_currency)
    if source == target:
        return IDENTITY_RATE

    direct = PEG_RATES.get((source, target))
    if direct is not None:
        return direct

    inverse = PEG_RATES.get((target, source))
    if inverse is not None:
        return IDENTITY_RATE / inverse

    return IDENTITY_RATE


def convert(amount: Decimal, from_currency: str | None, to_currency: str | None) -> Decimal:
    return amount * rate(from_currency, to_currency)


def fraction_digits(currency: str | None) -> int:
    return CURRENCY_FRACTION_DIGITS.get(_normalize(currency), DEFAULT_FRACTION_DIGITS)
