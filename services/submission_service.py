from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from core.errors import ApiClientError, DiscountInvalidError
from core.settings import REDIRECT_COUNTDOWN_SECONDS
from core.shop_api import NetworkClient, TransactionRequest
from core.timers import Countdown, Sleep
from core.validation_errors import field_error_map
from schemas.checkout import CheckoutActionResult, CheckoutContact, CheckoutFormState
from schemas.country import CountryRecord
from schemas.discount import Discount
from schemas.imports import ActionResultType
from services import phone_service
from services.discount_service import failure_message, utcnow, validate_discount_code
from services.pricing_service import PriceCalculation
from services.transaction_service import create_transaction

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    APPLYING_DISCOUNT = "applying_discount"
    DISCOUNT_APPLIED = "discount_applied"
    DISCOUNT_REJECTED = "discount_rejected"
    SUBMITTING = "submitting"
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_FAILED = "transaction_failed"
    REDIRECT_COUNTDOWN = "redirect_countdown"
    REDIRECTED = "redirected"


_ORDER_PLACED = (
    SubmissionState.SUBMITTING,
    SubmissionState.TRANSACTION_CREATED,
    SubmissionState.REDIRECT_COUNTDOWN,
    SubmissionState.REDIRECTED,
)


def validate_form(
    form: CheckoutFormState,
    country: CountryRecord | None,
    *,
    strict_phone: bool = False,
) -> dict[str, str]:
    errors: dict[str, str] = {}
    try:
        CheckoutContact(full_name=form.full_name, email=form.email, phone=form.phone)
    except ValidationError as err:
        errors.update(field_error_map(err.errors()))

    if "email" in errors:
        errors["email"] = "Email is required" if not form.email.strip() else "Invalid email address"

    if "phone" not in errors and country is not None:
        phone = phone_service.validate(form.phone, country, strict=strict_phone)
        if not phone.is_valid:
            errors["phone"] = phone.error or f"Invalid phone number for {country.name}"
    return errors


def discount_result(success: bool, message: str, discount: Discount | None = None) -> CheckoutActionResult:
    return CheckoutActionResult(type=ActionResultType.DISCOUNT, success=success, discount=discount, message=message)


def transaction_result(
    success: bool,
    message: str,
    transaction: dict[str, Any] | None = None,
    payment_url: str | None = None,
) -> CheckoutActionResult:
    return CheckoutActionResult(
        type=ActionResultType.TRANSACTION,
        success=success,
        transaction=transaction,
        payment_url=payment_url,
        message=message,
    )


class TransactionSubmitter:
    """Drives discount application and transaction creation for one checkout.

    Each of `apply_discount` and `submit` has its own in-flight flag: a call
    made while the previous one is still pending returns `None` and does
    nothing. Discounts are refused once a submission has started. A created
    transaction starts a countdown that redirects to the payment page when it
    reaches zero, unless `confirm_redirect` fires it first or `close` cancels
    it.
    """

    def __init__(
        self,
        *,
        form: CheckoutFormState,
        shop_id: str | None,
        product_id: str | None,
        redirect: Callable[[str], Any],
        client: NetworkClient | None = None,
        countdown_seconds: int = REDIRECT_COUNTDOWN_SECONDS,
        on_tick: Callable[[int], Any] | None = None,
        strict_phone: bool = False,
        clock: Callable[[], datetime] = utcnow,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.form = form
        self.shop_id = shop_id
        self.product_id = product_id
        self._redirect_to = redirect
        self._client = client
        self._countdown_seconds = countdown_seconds
        self._on_tick = on_tick
        self._strict_phone = strict_phone
        self._clock = clock
        self._sleep = sleep

        self.state = SubmissionState.IDLE
        self.history: list[SubmissionState] = [SubmissionState.IDLE]
        self.active_discount: Discount | None = None
        self.payment_url: str | None = None
        self.countdown: Countdown | None = None
        self._applying = False
        self._submitting = False

    def _transition(self, state: SubmissionState) -> None:
        logger.debug("checkout %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def is_busy(self) -> bool:
        return self._applying or self._submitting

    @property
    def seconds_remaining(self) -> int | None:
        return self.countdown.remaining if self.countdown is not None else None

    async def apply_discount(self, code: str | None = None) -> CheckoutActionResult | None:
        if self._applying:
            logger.info("discount application already in progress, ignoring")
            return None

        if self._submitting or self.state in _ORDER_PLACED:
            return discount_result(False, "The order has already been submitted")

        code = (code if code is not None else self.form.discount_code).strip()
        if not code or not self.shop_id:
            return discount_result(False, "Missing data to apply the discount")

        self._applying = True
        self._transition(SubmissionState.APPLYING_DISCOUNT)
        try:
            discount = await validate_discount_code(
                shop_id=self.shop_id,
                code=code,
                now=self._clock(),
                client=self._client,
            )
        except (DiscountInvalidError, ApiClientError) as err:
            self.active_discount = None
            self._settle_discount(SubmissionState.DISCOUNT_REJECTED)
            return discount_result(False, failure_message(err))
        except BaseException:
            self._settle_discount(None)
            raise
        finally:
            self._applying = False

        self.active_discount = discount
        self.form.edit("discount_code", "")
        self._settle_discount(SubmissionState.DISCOUNT_APPLIED)
        logger.info("discount %s applied for shop %s", discount.code, self.shop_id)
        return discount_result(True, "Discount applied", discount)

    def _settle_discount(self, outcome: SubmissionState | None) -> None:
        # A submit started meanwhile owns the state from here on.
        if self.state != SubmissionState.APPLYING_DISCOUNT:
            return
        if outcome is not None:
            self._transition(outcome)
        self._transition(SubmissionState.IDLE)

    async def submit(
        self,
        form: CheckoutFormState,
        price_calculation: PriceCalculation | None,
        country: CountryRecord | None,
    ) -> CheckoutActionResult | None:
        if self._submitting or self.state in (SubmissionState.REDIRECT_COUNTDOWN, SubmissionState.REDIRECTED):
            logger.info("transaction submission already in progress, ignoring")
            return None

        form.errors = validate_form(form, country, strict_phone=self._strict_phone)
        if form.has_errors:
            return transaction_result(False, "Please correct the highlighted fields")
        if country is None:
            return transaction_result(False, "Please select a country")
        if price_calculation is None:
            return transaction_result(False, "The price is not available yet")
        if not self.shop_id or not self.product_id:
            return transaction_result(False, "Missing product information")

        phone = phone_service.validate(form.phone, country, strict=self._strict_phone)
        request = TransactionRequest(
            client_name=form.full_name.strip(),
            email=form.email.strip(),
            phone=phone.e164 or "",
            product_id=self.product_id,
            shop_id=self.shop_id,
            amount=price_calculation.final_price,
            currency=price_calculation.currency,
            discount_id=self.active_discount.id if self.active_discount else None,
        )

        self._submitting = True
        self._transition(SubmissionState.SUBMITTING)
        try:
            result = await create_transaction(request, client=self._client)
        except ApiClientError as err:
            logger.warning("transaction creation failed: %s", err.message)
            self._transition(SubmissionState.TRANSACTION_FAILED)
            self._transition(SubmissionState.IDLE)
            return transaction_result(False, err.message)
        except BaseException:
            self._transition(SubmissionState.IDLE)
            raise
        finally:
            self._submitting = False

        if not result.payment_url:
            self._transition(SubmissionState.TRANSACTION_FAILED)
            self._transition(SubmissionState.IDLE)
            return transaction_result(False, "The transaction has no payment link")

        self._transition(SubmissionState.TRANSACTION_CREATED)
        self.payment_url = result.payment_url
        self._start_countdown()
        return transaction_result(True, "Transaction created", result.raw, result.payment_url)

    def _start_countdown(self) -> None:
        self.close()
        self._transition(SubmissionState.REDIRECT_COUNTDOWN)
        self.countdown = Countdown(
            self._countdown_seconds,
            on_finish=self._redirect,
            on_tick=self._on_tick,
            sleep=self._sleep,
        )
        self.countdown.start()

    def _redirect(self) -> None:
        self._transition(SubmissionState.REDIRECTED)
        logger.info("redirecting to payment page")
        self._redirect_to(self.payment_url or "")

    def confirm_redirect(self) -> bool:
        if self.countdown is None or self.countdown.fired:
            return False
        self.countdown.finish_now()
        return True

    def close(self) -> None:
        if self.countdown is not None and not self.countdown.fired:
            self.countdown.cancel()
