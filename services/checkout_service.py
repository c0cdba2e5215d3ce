from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator

from core.cache import TTLCache, build_cache
from core.errors import ApiClientError, DiscountInvalidError, submission_conflict, validation_failed
from core.settings import PHONE_DEBOUNCE_MS, REDIRECT_COUNTDOWN_SECONDS, Settings, get_settings
from core.shop_api import NetworkClient, TransactionRequest
from core.timers import Sleep
from schemas.checkout import (
    ApplyDiscountAction,
    CheckoutActionResult,
    CheckoutFormState,
    CreateTransactionAction,
)
from schemas.country import CountryRecord, LocationSignal
from schemas.product import ProductPriceDescriptor, ShopDescriptor
from services import currency_service, pricing_service
from services.country_service import CountryCatalog, CountrySelector, RestCountriesSource
from services.discount_service import failure_message, validate_discount_code
from services.location_service import GeolocationService
from services.phone_service import LivePhoneValidator
from services.pricing_service import PriceCalculation
from services.submission_service import (
    SubmissionState,
    TransactionSubmitter,
    discount_result,
    transaction_result,
)
from services.transaction_service import create_transaction

logger = logging.getLogger(__name__)


class InFlightGuard:
    """Keys of transactions currently being created; a second holder gets a 409."""

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        if key in self._keys:
            raise submission_conflict(key)
        self._keys.add(key)
        try:
            yield
        finally:
            self._keys.discard(key)


def transaction_key(action: CreateTransactionAction) -> str:
    return f"{action.shop_id}:{action.product_id}:{action.email.lower()}"


async def _apply_discount_action(
    action: ApplyDiscountAction,
    *,
    client: NetworkClient | None,
    now: datetime | None,
) -> CheckoutActionResult:
    code = action.discount_code.strip()
    if not code or not action.shop_id:
        return discount_result(False, "Missing data to apply the discount")
    try:
        discount = await validate_discount_code(shop_id=action.shop_id, code=code, now=now, client=client)
    except (DiscountInvalidError, ApiClientError) as err:
        return discount_result(False, failure_message(err))
    return discount_result(True, "Discount applied", discount)


async def _create_transaction_action(
    action: CreateTransactionAction,
    *,
    client: NetworkClient | None,
    guard: InFlightGuard,
) -> CheckoutActionResult:
    request = TransactionRequest(
        client_name=action.full_name.strip(),
        email=action.email,
        phone=action.phone.strip(),
        product_id=action.product_id,
        shop_id=action.shop_id,
        amount=action.amount,
        currency=action.currency,
        discount_id=action.discount_id,
    )
    with guard.hold(transaction_key(action)):
        try:
            result = await create_transaction(request, client=client)
        except ApiClientError as err:
            return transaction_result(False, err.message)
    return transaction_result(True, "Transaction created", result.raw, result.payment_url)


async def handle_checkout_action(
    action: ApplyDiscountAction | CreateTransactionAction,
    *,
    guard: InFlightGuard,
    client: NetworkClient | None = None,
    now: datetime | None = None,
) -> CheckoutActionResult:
    """Run one inbound checkout action against the shop API.

    Both action kinds answer with a result object rather than raising, except
    for a duplicate in-flight transaction, which is a conflict.
    """
    if isinstance(action, ApplyDiscountAction):
        return await _apply_discount_action(action, client=client, now=now)
    return await _create_transaction_action(action, client=client, guard=guard)


def build_country_catalog(settings: Settings, cache: TTLCache | None = None) -> CountryCatalog:
    return CountryCatalog(
        RestCountriesSource(settings.countries_source_url, timeout=settings.shop_api_timeout_seconds),
        cache or build_cache(settings.cache_backend, settings.redis_url),
        ttl_seconds=settings.country_cache_ttl_seconds,
    )


def build_geolocation_service(settings: Settings, cache: TTLCache | None = None) -> GeolocationService:
    return GeolocationService(
        settings.geolocation_url,
        cache or build_cache(settings.cache_backend, settings.redis_url),
        ttl_seconds=settings.location_cache_ttl_seconds,
        timeout=settings.shop_api_timeout_seconds,
    )


async def _no_location() -> LocationSignal | None:
    return None


class CheckoutSession:
    """One visitor's checkout: country, price, form and submission together.

    `load` fetches the country catalog and the visitor location in parallel;
    until it completes there is no country and no price. The price is derived
    on demand and only recomputed when the product, the discount or one of
    the currencies changes.
    """

    def __init__(
        self,
        *,
        product: ProductPriceDescriptor,
        shop: ShopDescriptor,
        catalog: CountryCatalog,
        redirect: Callable[[str], Any],
        geolocation: GeolocationService | None = None,
        client: NetworkClient | None = None,
        countdown_seconds: int = REDIRECT_COUNTDOWN_SECONDS,
        on_tick: Callable[[int], Any] | None = None,
        debounce_ms: int = PHONE_DEBOUNCE_MS,
        strict_phone: bool = False,
        locale: str = pricing_service.DEFAULT_LOCALE,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.product = product
        self.shop = shop
        self._catalog = catalog
        self._geolocation = geolocation
        self._locale = locale
        self.form = CheckoutFormState()
        self.location: LocationSignal | None = None
        self._selector: CountrySelector | None = None
        self._load_task: asyncio.Task | None = None
        self._price_key: tuple | None = None
        self._price: PriceCalculation | None = None
        self._phone = LivePhoneValidator(delay_ms=debounce_ms, strict=strict_phone, sleep=sleep)
        self.submitter = TransactionSubmitter(
            form=self.form,
            shop_id=shop.id,
            product_id=product.id,
            redirect=redirect,
            client=client,
            countdown_seconds=countdown_seconds,
            on_tick=on_tick,
            strict_phone=strict_phone,
            sleep=sleep,
        )

    @classmethod
    def from_settings(
        cls,
        *,
        product: ProductPriceDescriptor,
        shop: ShopDescriptor,
        redirect: Callable[[str], Any],
        client: NetworkClient | None = None,
        catalog: CountryCatalog | None = None,
        geolocation: GeolocationService | None = None,
        on_tick: Callable[[int], Any] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> "CheckoutSession":
        settings = get_settings()
        cache = build_cache(settings.cache_backend, settings.redis_url)
        return cls(
            product=product,
            shop=shop,
            catalog=catalog or build_country_catalog(settings, cache),
            redirect=redirect,
            geolocation=geolocation or build_geolocation_service(settings, cache),
            client=client,
            countdown_seconds=settings.redirect_countdown_seconds,
            on_tick=on_tick,
            debounce_ms=settings.phone_debounce_ms,
            strict_phone=settings.phone_strict_validation,
            locale=settings.display_locale,
            sleep=sleep,
        )

    async def load(self) -> CountryRecord:
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        await self._load_task
        return self.country

    async def _load(self) -> None:
        location_lookup = self._geolocation.get_location() if self._geolocation is not None else _no_location()
        countries, location = await asyncio.gather(self._catalog.fetch_countries(), location_lookup)
        self.location = location
        self._selector = CountrySelector(countries)
        country = self._selector.select_default_country(location, self.shop.currency)
        logger.info("checkout country resolved to %s (%s)", country.iso_code, country.currency)

    @property
    def loading(self) -> bool:
        return self._selector is None

    @property
    def countries(self) -> list[CountryRecord]:
        return self._selector.countries if self._selector is not None else []

    @property
    def country(self) -> CountryRecord | None:
        return self._selector.current if self._selector is not None else None

    @property
    def state(self) -> SubmissionState:
        return self.submitter.state

    @property
    def phone_error(self) -> str | None:
        return self._phone.annotation

    @property
    def price(self) -> PriceCalculation | None:
        country = self.country
        if country is None:
            return None

        discount = self.submitter.active_discount
        source_currency = self.shop.currency or country.currency
        key = (self.product, discount, source_currency, country.currency)
        if key != self._price_key:
            self._price = pricing_service.compute(
                self.product,
                discount,
                country.currency,
                currency_service.rate(source_currency, country.currency),
                locale=self._locale,
            )
            self._price_key = key
        return self._price

    def select_country(self, iso_code: str) -> CountryRecord:
        if self._selector is None:
            raise validation_failed("country", "Countries are still loading")
        country = self._selector.select(iso_code)
        if self.form.phone:
            self._phone.on_input(self.form.phone, country)
        return country

    def edit(self, field_name: str, value: str) -> None:
        """Update a form field; must run on the event loop for live phone checks."""
        self.form.edit(field_name, value)
        if field_name == "phone" and self.country is not None:
            self._phone.on_input(value, self.country)

    async def apply_discount(self, code: str | None = None) -> CheckoutActionResult | None:
        return await self.submitter.apply_discount(code)

    async def submit(self) -> CheckoutActionResult | None:
        return await self.submitter.submit(self.form, self.price, self.country)

    def confirm_redirect(self) -> bool:
        return self.submitter.confirm_redirect()

    def close(self) -> None:
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._phone.cancel()
        self.submitter.close()
