from __future__ import annotations

import logging
from typing import Any

import httpx

from core.errors import ApiClientError, ErrorCode
from core.shop_api.types import TenantInfo

logger = logging.getLogger(__name__)

_LOCAL_HOST_PREFIXES = ("localhost", "127.0.0.1", "192.168")


def resolve_tenant(hostname: str) -> TenantInfo:
    """Derive the storefront tenant from the host the visitor reached."""
    hostname = hostname.strip().lower().split(":", maxsplit=1)[0]
    parts = hostname.split(".")

    if hostname.startswith(_LOCAL_HOST_PREFIXES):
        return TenantInfo(subdomain=None, domain=hostname, full_domain=hostname, tenant_id="default")
    if len(parts) > 2:
        return TenantInfo(
            subdomain=parts[0],
            domain=".".join(parts[1:]),
            full_domain=hostname,
            tenant_id=parts[0],
        )
    return TenantInfo(
        subdomain=None,
        domain=hostname,
        full_domain=hostname,
        tenant_id=hostname.replace(".", "-"),
    )


def error_code_for_status(status_code: int) -> ErrorCode:
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code in (400, 422):
        return ErrorCode.VALIDATION_ERROR
    if status_code == 429:
        return ErrorCode.RATE_LIMIT
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    return ErrorCode.HTTP_ERROR


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("error_code") or body.get("detail")
        if isinstance(message, str) and message.strip():
            return message
    return response.reason_phrase or "Server error"


class NetworkClient:
    """Shop API transport: tenant headers on every request, failures as ApiClientError."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 10.0,
        default_headers: dict[str, str] | None = None,
        tenant: TenantInfo | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json", **(default_headers or {})},
            transport=transport,
        )
        self._tenant_headers: dict[str, str] = {}
        if tenant is not None:
            self.set_tenant_info(tenant)

    def set_tenant_info(self, tenant: TenantInfo) -> None:
        headers = {
            "X-Tenant-Domain": tenant.full_domain,
            "X-Tenant-ID": tenant.tenant_id,
        }
        if tenant.subdomain:
            headers["X-Tenant-Subdomain"] = tenant.subdomain
        self._tenant_headers = headers

    async def get(self, endpoint: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", endpoint, params=params)

    async def post(self, endpoint: str, *, json: Any = None) -> Any:
        return await self._request("POST", endpoint, json=json)

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, endpoint, headers=self._tenant_headers, **kwargs)
        except httpx.TimeoutException as err:
            logger.warning("%s %s timed out: %s", method, endpoint, err)
            raise ApiClientError(
                status=None,
                code=ErrorCode.NETWORK_ERROR,
                message="Network error: the server did not respond in time",
            ) from err
        except httpx.TransportError as err:
            logger.warning("%s %s failed: %s", method, endpoint, err)
            raise ApiClientError(
                status=None,
                code=ErrorCode.NETWORK_ERROR,
                message="Network error: no response from server",
            ) from err

        if response.status_code >= 400:
            raise ApiClientError(
                status=response.status_code,
                code=error_code_for_status(response.status_code),
                message=_error_message(response),
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as err:
            raise ApiClientError(
                status=response.status_code,
                code=ErrorCode.SERVER_ERROR,
                message="Invalid JSON in server response",
            ) from err

    async def aclose(self) -> None:
        await self._client.aclose()
