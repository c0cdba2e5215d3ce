from __future__ import annotations

from schemas.country import CountryRecord

# Served when the reference source cannot be reached; checkout must never block on it.
FALLBACK_COUNTRIES: tuple[CountryRecord, ...] = (
    CountryRecord(name="Cameroon", iso_code="CM", dial_code="+237", currency="XAF", flag="🇨🇲"),
    CountryRecord(name="Côte d'Ivoire", iso_code="CI", dial_code="+225", currency="XOF", flag="🇨🇮"),
    CountryRecord(name="DR Congo", iso_code="CD", dial_code="+243", currency="CDF", flag="🇨🇩"),
    CountryRecord(name="France", iso_code="FR", dial_code="+33", currency="EUR", flag="🇫🇷"),
    CountryRecord(name="Senegal", iso_code="SN", dial_code="+221", currency="XOF", flag="🇸🇳"),
)

DEFAULT_COUNTRY = CountryRecord(name="France", iso_code="FR", dial_code="+33", currency="EUR", flag="🇫🇷")
