from __future__ import annotations

from threading import Lock

from core.settings import get_settings
from core.shop_api.client import NetworkClient, resolve_tenant


class ShopApiManager:
    _instance: "ShopApiManager | None" = None
    _lock = Lock()

    def __init__(self, client: NetworkClient) -> None:
        self._client = client

    @classmethod
    def configure(cls, client: NetworkClient) -> "ShopApiManager":
        with cls._lock:
            cls._instance = cls(client=client)
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "ShopApiManager":
        settings = get_settings()
        tenant = resolve_tenant(settings.tenant_hostname) if settings.tenant_hostname else None
        client = NetworkClient(
            base_url=settings.shop_api_base_url,
            timeout=settings.shop_api_timeout_seconds,
            tenant=tenant,
        )
        return cls.configure(client)

    @classmethod
    def get_instance(cls) -> "ShopApiManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @classmethod
    async def shutdown(cls) -> None:
        with cls._lock:
            instance, cls._instance = cls._instance, None
        if instance is not None:
            await instance.client.aclose()

    @property
    def client(self) -> NetworkClient:
        return self._client
