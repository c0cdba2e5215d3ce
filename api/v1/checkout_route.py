from functools import lru_cache

from fastapi import APIRouter, Depends, Request

from core.errors import phone_invalid, validation_failed
from core.response_envelope import document_response
from core.settings import get_settings
from core.shop_api import NetworkClient, ShopApiManager
from schemas.checkout import CheckoutActionIn, PhoneValidateIn, QuoteIn
from services import currency_service, phone_service, pricing_service
from services.checkout_service import InFlightGuard, build_country_catalog, handle_checkout_action
from services.country_service import CountryCatalog, find_country, select_default_country

router = APIRouter(prefix="/checkout", tags=["Checkout"])

transaction_guard = InFlightGuard()


def get_shop_client() -> NetworkClient:
    return ShopApiManager.get_instance().client


@lru_cache(maxsize=1)
def get_country_catalog() -> CountryCatalog:
    return build_country_catalog(get_settings())


@router.post("/actions")
@document_response(message="Checkout action processed")
async def run_checkout_action(
    request: Request,
    payload: CheckoutActionIn,
    client: NetworkClient = Depends(get_shop_client),
):
    result = await handle_checkout_action(payload.root, guard=transaction_guard, client=client)
    return result.model_dump(mode="json", exclude_none=True)


@router.get("/countries")
@document_response(message="Countries fetched successfully")
async def list_countries(
    request: Request,
    catalog: CountryCatalog = Depends(get_country_catalog),
):
    countries = await catalog.fetch_countries()
    return [country.model_dump() for country in countries]


@router.post("/quote")
@document_response(message="Price computed successfully")
async def quote_price(
    request: Request,
    payload: QuoteIn,
    catalog: CountryCatalog = Depends(get_country_catalog),
):
    countries = await catalog.fetch_countries()
    if payload.country_code:
        country = find_country(countries, payload.country_code)
        if country is None:
            raise validation_failed("country_code", "Unknown country", {"iso_code": payload.country_code})
    else:
        country = select_default_country(countries, None, payload.shop_currency)

    target_currency = payload.target_currency or country.currency
    source_currency = payload.shop_currency or target_currency
    calculation = pricing_service.compute(
        payload.product,
        payload.discount,
        target_currency,
        currency_service.rate(source_currency, target_currency),
        locale=get_settings().display_locale,
    )
    return {"country": country.model_dump(), "price": calculation.to_dict()}


@router.post("/phone/validate")
@document_response(message="Phone number is valid")
async def validate_phone(
    request: Request,
    payload: PhoneValidateIn,
    catalog: CountryCatalog = Depends(get_country_catalog),
):
    country = find_country(await catalog.fetch_countries(), payload.country_code)
    if country is None:
        raise validation_failed("country_code", "Unknown country", {"iso_code": payload.country_code})

    result = phone_service.validate(payload.phone, country, strict=get_settings().phone_strict_validation)
    if not result.is_valid:
        raise phone_invalid(country.name, result.reason)
    return {"phone": result.e164, "country": country.iso_code}
