from core.shop_api.client import NetworkClient, error_code_for_status, resolve_tenant
from core.shop_api.manager import ShopApiManager
from core.shop_api.types import TenantInfo, TransactionRequest, TransactionResult

__all__ = [
    "NetworkClient",
    "ShopApiManager",
    "TenantInfo",
    "TransactionRequest",
    "TransactionResult",
    "error_code_for_status",
    "resolve_tenant",
]
