from __future__ import annotations

import logging

from core.errors import ApiClientError, ErrorCode
from core.shop_api import NetworkClient, ShopApiManager, TransactionRequest, TransactionResult

logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "/shop/client/transactions"


async def create_transaction(
    request: TransactionRequest,
    *,
    client: NetworkClient | None = None,
) -> TransactionResult:
    client = client or ShopApiManager.get_instance().client
    body = await client.post(TRANSACTIONS_PATH, json=request.to_payload())

    if not isinstance(body, dict) or body.get("success") is False:
        message = None
        if isinstance(body, dict):
            message = body.get("error_code") or body.get("message")
        raise ApiClientError(
            status=200,
            code=ErrorCode.HTTP_ERROR,
            message=message or "Transaction could not be created",
        )

    data = body.get("data") or {}
    if not isinstance(data, dict):
        logger.warning("transaction response carried %s data", type(data).__name__)
        raise ApiClientError(
            status=200,
            code=ErrorCode.SERVER_ERROR,
            message="The transaction response could not be read",
        )

    result = TransactionResult(
        transaction_id=data.get("id") or data.get("transaction_id"),
        payment_url=data.get("payment_url"),
        raw=data,
    )
    logger.info(
        "transaction %s created for product %s (amount=%s %s)",
        result.transaction_id,
        request.product_id,
        request.amount,
        request.currency or "-",
    )
    return result
