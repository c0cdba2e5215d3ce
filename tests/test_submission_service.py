from __future__ import annotations

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from core.shop_api import NetworkClient
from schemas.checkout import CheckoutFormState
from schemas.country import CountryRecord
from schemas.product import ProductPriceDescriptor
from services import pricing_service, submission_service
from services.submission_service import SubmissionState, TransactionSubmitter, validate_form

CAMEROON = CountryRecord(name="Cameroon", iso_code="CM", dial_code="+237", currency="XAF")
PAYMENT_URL = "https://pay.example/checkout/tx-1"

DISCOUNT = {
    "id": "disc-1",
    "code": "WELCOME",
    "name": "Welcome",
    "discount_type": "percentage",
    "discount_value": "10",
    "status": "active",
    "starts_at": "2024-01-01T00:00:00Z",
    "ends_at": "2099-12-31T00:00:00Z",
    "max_uses": 100,
    "current_uses": 1,
    "is_valid": True,
}


async def _no_wait(seconds: float) -> None:
    return None


def _filled_form() -> CheckoutFormState:
    return CheckoutFormState(full_name="Ada Lovelace", email="ada@lovelace.io", phone="6 12 34 56 78")


def _price():
    product = ProductPriceDescriptor(id="product-1", price=Decimal("100"))
    return pricing_service.compute(product, None, "XAF", Decimal("700"))


def _client(handler) -> NetworkClient:
    return NetworkClient(base_url="https://api.shop.example", transport=httpx.MockTransport(handler))


def _shop_api(
    *,
    discount_status: int = 200,
    transaction: dict | None = None,
    transaction_status: int = 200,
    requests: list[httpx.Request] | None = None,
):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if "/discounts/" in request.url.path:
            if discount_status != 200:
                return httpx.Response(discount_status, json={"message": "Discount code not found"})
            return httpx.Response(200, json={"success": True, "data": DISCOUNT})
        body = transaction if transaction is not None else {"id": "tx-1", "payment_url": PAYMENT_URL}
        return httpx.Response(transaction_status, json={"success": transaction_status < 400, "data": body})

    return _client(handler)


def _submitter(form: CheckoutFormState, client: NetworkClient, redirects: list[str], **kwargs) -> TransactionSubmitter:
    kwargs.setdefault("sleep", _no_wait)
    return TransactionSubmitter(
        form=form,
        shop_id="shop-1",
        product_id="product-1",
        redirect=redirects.append,
        client=client,
        **kwargs,
    )


def test_validate_form_reports_each_missing_field():
    errors = validate_form(CheckoutFormState(), CAMEROON)

    assert errors == {
        "full_name": "This field is required",
        "email": "Email is required",
        "phone": "This field is required",
    }


def test_validate_form_rejects_bad_email_short_name_and_wrong_phone():
    form = CheckoutFormState(full_name="A", email="not-an-email", phone="12")

    errors = validate_form(form, CAMEROON)

    assert errors == {
        "full_name": "Please enter your full name",
        "email": "Invalid email address",
        "phone": "Invalid phone number for Cameroon",
    }


def test_editing_a_field_clears_its_error():
    form = CheckoutFormState(errors={"email": "Invalid email address", "phone": "Phone number is required"})

    form.edit("email", "ada@lovelace.io")

    assert form.errors == {"phone": "Phone number is required"}


@pytest.mark.asyncio
async def test_apply_discount_success_stores_discount_and_clears_code():
    form = _filled_form()
    form.discount_code = "WELCOME"
    client = _shop_api()
    submitter = _submitter(form, client, [])
    try:
        result = await submitter.apply_discount()
    finally:
        await client.aclose()

    assert result.success is True
    assert result.message == "Discount applied"
    assert submitter.active_discount.id == "disc-1"
    assert form.discount_code == ""
    assert submitter.history == [
        SubmissionState.IDLE,
        SubmissionState.APPLYING_DISCOUNT,
        SubmissionState.DISCOUNT_APPLIED,
        SubmissionState.IDLE,
    ]


@pytest.mark.asyncio
async def test_failed_discount_clears_the_active_one():
    form = _filled_form()
    client = _shop_api()
    submitter = _submitter(form, client, [])
    await submitter.apply_discount("WELCOME")
    await client.aclose()

    client = _shop_api(discount_status=404)
    submitter._client = client
    try:
        result = await submitter.apply_discount("UNKNOWN")
    finally:
        await client.aclose()

    assert result.success is False
    assert result.message == "Discount code not found"
    assert submitter.active_discount is None
    assert submitter.history[-2:] == [SubmissionState.DISCOUNT_REJECTED, SubmissionState.IDLE]


@pytest.mark.asyncio
async def test_apply_discount_needs_a_code():
    submitter = _submitter(_filled_form(), _shop_api(), [])

    result = await submitter.apply_discount("   ")

    assert result.success is False
    assert result.message == "Missing data to apply the discount"
    assert submitter.history == [SubmissionState.IDLE]


@pytest.mark.asyncio
async def test_concurrent_discount_application_is_ignored():
    entered = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        entered.set()
        await release.wait()
        return httpx.Response(200, json={"success": True, "data": DISCOUNT})

    client = _client(handler)
    submitter = _submitter(_filled_form(), client, [])
    try:
        first = asyncio.create_task(submitter.apply_discount("WELCOME"))
        await entered.wait()

        assert submitter.is_busy is True
        assert await submitter.apply_discount("WELCOME") is None

        release.set()
        result = await first
    finally:
        await client.aclose()

    assert result.success is True
    assert submitter.history.count(SubmissionState.APPLYING_DISCOUNT) == 1


@pytest.mark.asyncio
async def test_submit_with_invalid_form_sets_field_errors():
    form = CheckoutFormState(full_name="Ada Lovelace", email="ada@lovelace.io", phone="12")
    requests: list[httpx.Request] = []
    client = _shop_api(requests=requests)
    submitter = _submitter(form, client, [])
    try:
        result = await submitter.submit(form, _price(), CAMEROON)
    finally:
        await client.aclose()

    assert result.success is False
    assert form.errors == {"phone": "Invalid phone number for Cameroon"}
    assert requests == []
    assert submitter.state == SubmissionState.IDLE


@pytest.mark.asyncio
async def test_submit_requires_a_price():
    form = _filled_form()
    submitter = _submitter(form, _shop_api(), [])

    result = await submitter.submit(form, None, CAMEROON)

    assert result.success is False
    assert result.message == "The price is not available yet"


@pytest.mark.asyncio
async def test_successful_submission_counts_down_then_redirects():
    form = _filled_form()
    requests: list[httpx.Request] = []
    redirects: list[str] = []
    ticks: list[int] = []
    client = _shop_api(requests=requests)
    submitter = _submitter(form, client, redirects, on_tick=ticks.append)
    try:
        await submitter.apply_discount("WELCOME")
        result = await submitter.submit(form, _price(), CAMEROON)
        await submitter.countdown.start()
    finally:
        await client.aclose()

    assert result.success is True
    assert result.payment_url == PAYMENT_URL
    assert redirects == [PAYMENT_URL]
    assert ticks == list(range(29, -1, -1))
    assert submitter.history[-4:] == [
        SubmissionState.SUBMITTING,
        SubmissionState.TRANSACTION_CREATED,
        SubmissionState.REDIRECT_COUNTDOWN,
        SubmissionState.REDIRECTED,
    ]

    payload = json.loads(requests[-1].content)
    assert requests[-1].url.path == "/shop/client/transactions"
    assert payload == {
        "client_name": "Ada Lovelace",
        "email": "ada@lovelace.io",
        "phone": "+237612345678",
        "product_id": "product-1",
        "shop_id": "shop-1",
        "amount": "70000",
        "currency": "XAF",
        "discount_id": "disc-1",
    }


@pytest.mark.asyncio
async def test_confirm_redirect_skips_the_countdown():
    gate = asyncio.Event()

    async def _blocked(seconds: float) -> None:
        await gate.wait()

    form = _filled_form()
    redirects: list[str] = []
    client = _shop_api()
    submitter = _submitter(form, client, redirects, sleep=_blocked)
    try:
        await submitter.submit(form, _price(), CAMEROON)
    finally:
        await client.aclose()

    assert submitter.seconds_remaining == 30
    assert submitter.confirm_redirect() is True
    assert redirects == [PAYMENT_URL]
    assert submitter.confirm_redirect() is False
    assert submitter.state == SubmissionState.REDIRECTED


@pytest.mark.asyncio
async def test_close_cancels_a_pending_redirect():
    gate = asyncio.Event()

    async def _blocked(seconds: float) -> None:
        await gate.wait()

    form = _filled_form()
    redirects: list[str] = []
    client = _shop_api()
    submitter = _submitter(form, client, redirects, sleep=_blocked)
    try:
        await submitter.submit(form, _price(), CAMEROON)
    finally:
        await client.aclose()

    task = submitter.countdown.start()
    submitter.close()
    gate.set()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert redirects == []
    assert submitter.state == SubmissionState.REDIRECT_COUNTDOWN


@pytest.mark.asyncio
async def test_second_submit_during_countdown_is_ignored():
    gate = asyncio.Event()

    async def _blocked(seconds: float) -> None:
        await gate.wait()

    form = _filled_form()
    requests: list[httpx.Request] = []
    client = _shop_api(requests=requests)
    submitter = _submitter(form, client, [], sleep=_blocked)
    try:
        await submitter.submit(form, _price(), CAMEROON)
        assert await submitter.submit(form, _price(), CAMEROON) is None
    finally:
        submitter.close()
        await client.aclose()

    assert len(requests) == 1


@pytest.mark.asyncio
async def test_failed_transaction_returns_to_idle_with_server_message():
    form = _filled_form()
    client = _client(lambda request: httpx.Response(500, json={"message": "Payment provider unavailable"}))
    submitter = _submitter(form, client, [])
    try:
        result = await submitter.submit(form, _price(), CAMEROON)
    finally:
        await client.aclose()

    assert result.success is False
    assert result.message == "Payment provider unavailable"
    assert submitter.history[-3:] == [
        SubmissionState.SUBMITTING,
        SubmissionState.TRANSACTION_FAILED,
        SubmissionState.IDLE,
    ]
    assert submitter.is_busy is False


@pytest.mark.asyncio
async def test_transaction_without_payment_link_fails():
    form = _filled_form()
    client = _shop_api(transaction={"id": "tx-1"})
    submitter = _submitter(form, client, [])
    try:
        result = await submitter.submit(form, _price(), CAMEROON)
    finally:
        await client.aclose()

    assert result.success is False
    assert result.message == "The transaction has no payment link"
    assert submitter.state == SubmissionState.IDLE
    assert submitter.countdown is None


@pytest.mark.asyncio
async def test_discount_during_countdown_is_refused_and_redirects_once():
    gate = asyncio.Event()

    async def _blocked(seconds: float) -> None:
        await gate.wait()

    form = _filled_form()
    requests: list[httpx.Request] = []
    redirects: list[str] = []
    client = _shop_api(requests=requests)
    submitter = _submitter(form, client, redirects, sleep=_blocked)
    try:
        await submitter.submit(form, _price(), CAMEROON)
        countdown = submitter.countdown

        result = await submitter.apply_discount("WELCOME")

        assert result.success is False
        assert result.message == "The order has already been submitted"
        assert submitter.state == SubmissionState.REDIRECT_COUNTDOWN
        assert await submitter.submit(form, _price(), CAMEROON) is None
        assert submitter.countdown is countdown

        assert submitter.confirm_redirect() is True
    finally:
        submitter.close()
        await client.aclose()

    assert len(requests) == 1
    assert redirects == [PAYMENT_URL]


@pytest.mark.asyncio
async def test_discount_while_submitting_is_refused():
    entered = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if "/discounts/" in request.url.path:
            return httpx.Response(200, json={"success": True, "data": DISCOUNT})
        entered.set()
        await release.wait()
        return httpx.Response(200, json={"success": True, "data": {"id": "tx-1", "payment_url": PAYMENT_URL}})

    form = _filled_form()
    client = _client(handler)
    submitter = _submitter(form, client, [])
    try:
        submission = asyncio.create_task(submitter.submit(form, _price(), CAMEROON))
        await entered.wait()

        refused = await submitter.apply_discount("WELCOME")
        release.set()
        result = await submission
    finally:
        submitter.close()
        await client.aclose()

    assert refused.success is False
    assert submitter.active_discount is None
    assert result.success is True
    assert SubmissionState.APPLYING_DISCOUNT not in submitter.history


@pytest.mark.asyncio
async def test_pending_discount_does_not_reset_a_started_submission():
    entered = asyncio.Event()
    release = asyncio.Event()
    gate = asyncio.Event()

    async def _blocked(seconds: float) -> None:
        await gate.wait()

    async def handler(request: httpx.Request) -> httpx.Response:
        if "/discounts/" in request.url.path:
            entered.set()
            await release.wait()
            return httpx.Response(200, json={"success": True, "data": DISCOUNT})
        return httpx.Response(200, json={"success": True, "data": {"id": "tx-1", "payment_url": PAYMENT_URL}})

    form = _filled_form()
    redirects: list[str] = []
    client = _client(handler)
    submitter = _submitter(form, client, redirects, sleep=_blocked)
    try:
        applying = asyncio.create_task(submitter.apply_discount("WELCOME"))
        await entered.wait()

        result = await submitter.submit(form, _price(), CAMEROON)
        release.set()
        await applying

        assert result.success is True
        assert submitter.state == SubmissionState.REDIRECT_COUNTDOWN
        assert await submitter.submit(form, _price(), CAMEROON) is None
    finally:
        submitter.close()
        await client.aclose()

    assert SubmissionState.DISCOUNT_APPLIED not in submitter.history
    assert redirects == []


@pytest.mark.asyncio
async def test_unreadable_transaction_response_fails_back_to_idle():
    form = _filled_form()
    client = _shop_api(transaction=["tx-1"])
    submitter = _submitter(form, client, [])
    try:
        result = await submitter.submit(form, _price(), CAMEROON)
    finally:
        await client.aclose()

    assert result.success is False
    assert result.message == "The transaction response could not be read"
    assert submitter.history[-3:] == [
        SubmissionState.SUBMITTING,
        SubmissionState.TRANSACTION_FAILED,
        SubmissionState.IDLE,
    ]
    assert submitter.is_busy is False


@pytest.mark.asyncio
async def test_unexpected_submit_error_still_returns_to_idle(monkeypatch: pytest.MonkeyPatch):
    async def _broken(request, *, client=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(submission_service, "create_transaction", _broken)
    form = _filled_form()
    submitter = _submitter(form, _shop_api(), [])

    with pytest.raises(RuntimeError):
        await submitter.submit(form, _price(), CAMEROON)

    assert submitter.state == SubmissionState.IDLE
    assert submitter.is_busy is False
