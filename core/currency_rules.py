from __future__ import annotations

from decimal import Decimal

EUR_TO_CFA = Decimal("700")
EUR_TO_CDF = Decimal("3000")

# Fixed pegs, not market rates. Reverse directions are derived from this table.
PEG_RATES: dict[tuple[str, str], Decimal] = {
    ("EUR", "XAF"): EUR_TO_CFA,
    ("EUR", "XOF"): EUR_TO_CFA,
    ("EUR", "CDF"): EUR_TO_CDF,
    ("XAF", "XOF"): Decimal(1),
    ("XAF", "CDF"): EUR_TO_CDF / EUR_TO_CFA,
    ("XOF", "CDF"): EUR_TO_CDF / EUR_TO_CFA,
}

CURRENCY_FRACTION_DIGITS: dict[str, int] = {
    "XAF": 0,
    "XOF": 0,
    "JPY": 0,
    "KRW": 0,
}
DEFAULT_FRACTION_DIGITS = 2
