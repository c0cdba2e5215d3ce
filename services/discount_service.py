from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from urllib.parse import quote

from core.errors import ApiClientError, DiscountInvalidError, DiscountInvalidReason, ErrorCode
from core.shop_api import NetworkClient, ShopApiManager
from schemas.discount import Discount
from schemas.imports import DiscountStatus, DiscountType

logger = logging.getLogger(__name__)

REASON_MESSAGES: dict[DiscountInvalidReason, str] = {
    DiscountInvalidReason.NOT_FOUND: "Discount code not found",
    DiscountInvalidReason.INACTIVE: "This discount code is no longer valid",
    DiscountInvalidReason.NOT_STARTED: "This discount code is not active yet",
    DiscountInvalidReason.EXPIRED: "This discount code has expired",
    DiscountInvalidReason.EXHAUSTED: "This discount code has reached its usage limit",
}


def _discount_path(shop_id: str, code: str) -> str:
    return f"/shop/client/shops/{quote(shop_id, safe='')}/discounts/{quote(code, safe='')}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def fetch_discount(*, shop_id: str, code: str, client: NetworkClient | None = None) -> Discount:
    """Look a discount code up for a shop.

    Raises `DiscountInvalidError` when the server does not know the code or
    rejects it, and lets `ApiClientError` through for server and network
    failures so callers can offer a retry.
    """
    client = client or ShopApiManager.get_instance().client
    try:
        body = await client.get(_discount_path(shop_id, code.strip()))
    except ApiClientError as err:
        if err.code == ErrorCode.NOT_FOUND:
            raise DiscountInvalidError(DiscountInvalidReason.NOT_FOUND, "Discount code not found") from err
        if err.code == ErrorCode.VALIDATION_ERROR:
            raise DiscountInvalidError(DiscountInvalidReason.NOT_FOUND, "Invalid discount code") from err
        raise

    if not isinstance(body, dict) or body.get("success") is False or not body.get("data"):
        message = body.get("message") if isinstance(body, dict) else None
        raise DiscountInvalidError(DiscountInvalidReason.NOT_FOUND, message or "Invalid discount code")

    return Discount.model_validate(body["data"])


def invalid_reason(discount: Discount, now: datetime | None = None) -> DiscountInvalidReason | None:
    now = _as_utc(now or utcnow())
    if discount.status.lower() != DiscountStatus.ACTIVE.value or not discount.is_valid:
        return DiscountInvalidReason.INACTIVE
    if now < _as_utc(discount.starts_at):
        return DiscountInvalidReason.NOT_STARTED
    if now > _as_utc(discount.ends_at):
        return DiscountInvalidReason.EXPIRED
    if discount.current_uses >= discount.max_uses:
        return DiscountInvalidReason.EXHAUSTED
    return None


def is_valid(discount: Discount, now: datetime | None = None) -> bool:
    return invalid_reason(discount, now) is None


def apply_amount(discount: Discount, original_amount: Decimal, rate: Decimal = Decimal(1)) -> Decimal:
    """Discount owed on `original_amount`, never more than the amount itself.

    `rate` converts a fixed-amount value into the amount's currency before
    clamping; percentages are currency-free.
    """
    if original_amount <= 0:
        return Decimal(0)
    if discount.discount_type == DiscountType.PERCENTAGE:
        amount = original_amount * discount.discount_value / Decimal(100)
    else:
        amount = discount.discount_value * rate
    return max(Decimal(0), min(amount, original_amount))


def failure_message(err: Exception) -> str:
    if isinstance(err, DiscountInvalidError):
        return err.message
    if isinstance(err, ApiClientError):
        if err.code == ErrorCode.SERVER_ERROR:
            return "Server error, please try again"
        if err.code == ErrorCode.NETWORK_ERROR:
            return "Network error, please try again"
        if err.code == ErrorCode.RATE_LIMIT:
            return "Too many attempts, please wait and try again"
        return err.message
    return "Could not apply the discount"


async def validate_discount_code(
    *,
    shop_id: str,
    code: str,
    now: datetime | None = None,
    client: NetworkClient | None = None,
) -> Discount:
    """Fetch a code and check it is usable right now, raising `DiscountInvalidError` otherwise."""
    discount = await fetch_discount(shop_id=shop_id, code=code, client=client)
    reason = invalid_reason(discount, now)
    if reason is not None:
        logger.info("discount %s rejected for shop %s: %s", discount.code, shop_id, reason.value)
        raise DiscountInvalidError(reason, REASON_MESSAGES[reason])
    return discount
