from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class TenantInfo:
    subdomain: str | None
    domain: str
    full_domain: str
    tenant_id: str


@dataclass(frozen=True)
class TransactionRequest:
    client_name: str
    email: str
    phone: str
    product_id: str
    shop_id: str
    amount: Decimal
    currency: str | None = None
    discount_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "client_name": self.client_name,
            "email": self.email,
            "phone": self.phone,
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            # Decimal text, never a float.
            "amount": str(self.amount),
        }
        if self.currency:
            payload["currency"] = self.currency
        if self.discount_id:
            payload["discount_id"] = self.discount_id
        return payload


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str | None
    payment_url: str | None
    raw: dict[str, Any]
