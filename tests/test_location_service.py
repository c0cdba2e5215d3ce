from __future__ import annotations

import httpx
import pytest

from core.cache import MemoryTTLCache
from services.location_service import GeolocationService


def _service(handler, cache=None) -> GeolocationService:
    return GeolocationService(
        "https://geo.example/json/",
        cache if cache is not None else MemoryTTLCache(),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_location_is_fetched_once_and_cached():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(
            200,
            json={"country_code": "CM", "currency": "XAF", "city": "Douala", "org": "ignored"},
        )

    service = _service(handler)

    first = await service.get_location()
    second = await service.get_location()

    assert first.country_code == "CM"
    assert first.currency == "XAF"
    assert first.city == "Douala"
    assert second == first
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_refresh_clears_the_cached_location():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200, json={"country_code": "SN", "currency": "XOF"})

    service = _service(handler)
    await service.get_location()
    await service.refresh()

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_lookup_failures_return_none():
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline")

    assert await _service(unreachable).get_location() is None
    assert await _service(lambda request: httpx.Response(500)).get_location() is None
    assert await _service(lambda request: httpx.Response(200, json={"error": True, "reason": "RateLimited"})).get_location() is None
    assert await _service(lambda request: httpx.Response(200, content=b"not json")).get_location() is None
