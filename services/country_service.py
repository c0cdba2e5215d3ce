from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import httpx
from pydantic import ValidationError

from core.cache import TTLCache
from core.countries import DEFAULT_COUNTRY, FALLBACK_COUNTRIES
from core.errors import validation_failed
from core.settings import COUNTRY_CACHE_TTL_SECONDS
from schemas.country import CountryRecord, LocationSignal

logger = logging.getLogger(__name__)

COUNTRY_CACHE_KEY = "countries:catalog"


class CountryDataSource(Protocol):
    async def fetch(self) -> list[dict[str, Any]]:
        ...


class RestCountriesSource:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def fetch(self) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._url)
            response.raise_for_status()
            payload = response.json()
        if not isinstance(payload, list):
            raise ValueError("country reference data must be a list")
        return payload


def _dial_code_from_idd(idd: Any) -> str:
    if not isinstance(idd, dict):
        return ""
    root = str(idd.get("root") or "")
    suffixes = idd.get("suffixes") or []
    # Shared roots such as +1 list many area-code suffixes; keep the root alone.
    if root and len(suffixes) == 1:
        return f"{root}{suffixes[0]}"
    return root


def parse_country(raw: dict[str, Any]) -> CountryRecord | None:
    name = raw.get("name")
    if isinstance(name, dict):
        name = name.get("common")
    iso_code = raw.get("iso_code") or raw.get("cca2")
    dial_code = raw.get("dial_code") or _dial_code_from_idd(raw.get("idd"))
    currency = raw.get("currency")
    if not currency and isinstance(raw.get("currencies"), dict):
        currency = next(iter(raw["currencies"]), None)

    if not (name and iso_code and dial_code and currency):
        return None
    try:
        return CountryRecord(
            name=name,
            iso_code=iso_code,
            dial_code=dial_code,
            currency=currency,
            flag=raw.get("flag") or "",
        )
    except ValidationError:
        return None


class CountryCatalog:
    """Reference list of countries with a TTL cache and a fixed fallback."""

    def __init__(
        self,
        source: CountryDataSource,
        cache: TTLCache,
        *,
        ttl_seconds: int = COUNTRY_CACHE_TTL_SECONDS,
    ) -> None:
        self._source = source
        self._cache = cache
        self._ttl_seconds = ttl_seconds

    async def fetch_countries(self) -> list[CountryRecord]:
        cached = self._cache.get(COUNTRY_CACHE_KEY)
        if cached:
            try:
                return [CountryRecord.model_validate(item) for item in cached]
            except ValidationError:
                self._cache.delete(COUNTRY_CACHE_KEY)
        return await self.refresh()

    async def refresh(self) -> list[CountryRecord]:
        try:
            raw_countries = await self._source.fetch()
        except Exception as err:
            logger.warning("country reference fetch failed, serving fallback list: %s", err)
            return list(FALLBACK_COUNTRIES)

        countries = sorted(
            (country for country in map(parse_country, raw_countries) if country is not None),
            key=lambda country: country.name.casefold(),
        )
        if not countries:
            logger.warning("country reference data had no usable entries, serving fallback list")
            return list(FALLBACK_COUNTRIES)

        self._cache.set(
            COUNTRY_CACHE_KEY,
            [country.model_dump() for country in countries],
            self._ttl_seconds,
        )
        return countries


def _first_with_currency(countries: Sequence[CountryRecord], currency: str | None) -> CountryRecord | None:
    if not currency:
        return None
    wanted = currency.strip().upper()
    return next((country for country in countries if country.currency == wanted), None)


def select_default_country(
    countries: Sequence[CountryRecord],
    location_signal: LocationSignal | None,
    shop_currency: str | None,
) -> CountryRecord:
    """Shop currency, then visitor country, then visitor currency, then the first entry."""
    match = _first_with_currency(countries, shop_currency)
    if match is not None:
        return match

    if location_signal is not None and location_signal.country_code:
        wanted = location_signal.country_code.strip().upper()
        match = next((country for country in countries if country.iso_code == wanted), None)
        if match is not None:
            return match

    if location_signal is not None:
        match = _first_with_currency(countries, location_signal.currency)
        if match is not None:
            return match

    return countries[0] if countries else DEFAULT_COUNTRY


def find_country(countries: Sequence[CountryRecord], iso_code: str) -> CountryRecord | None:
    wanted = iso_code.strip().upper()
    return next((country for country in countries if country.iso_code == wanted), None)


class CountrySelector:
    def __init__(self, countries: Sequence[CountryRecord]) -> None:
        self._countries = list(countries)
        self._resolved: CountryRecord | None = None
        self._override: CountryRecord | None = None

    @property
    def countries(self) -> list[CountryRecord]:
        return list(self._countries)

    @property
    def is_manual(self) -> bool:
        return self._override is not None

    @property
    def current(self) -> CountryRecord:
        if self._override is not None:
            return self._override
        if self._resolved is None:
            self._resolved = select_default_country(self._countries, None, None)
        return self._resolved

    def select_default_country(
        self,
        location_signal: LocationSignal | None,
        shop_currency: str | None,
    ) -> CountryRecord:
        self._resolved = select_default_country(self._countries, location_signal, shop_currency)
        return self.current

    def select(self, iso_code: str) -> CountryRecord:
        country = find_country(self._countries, iso_code)
        if country is None:
            raise validation_failed("country", "Unknown country", {"iso_code": iso_code})
        self._override = country
        return country
