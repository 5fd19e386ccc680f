"""HTTP accessor for the catalog's REST origin.

The origin wraps every response as ``{"success": bool, "data" | "error"}``.
Transport failures, non-2xx statuses and ``success: false`` bodies are all
raised as ``CatalogError``; callers never see ``httpx`` exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from catalogcache.errors import CatalogError, ErrorCode

if TYPE_CHECKING:
    from catalogcache.config import OriginSettings

log = structlog.get_logger()


def build_http_client(settings: OriginSettings) -> httpx.AsyncClient:
    """Create the shared httpx client for the origin."""
    return httpx.AsyncClient(
        base_url=settings.base_url,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"Cache-Control": "no-cache"},
    )


class OriginClient:
    """Thin REST client: ``GET/POST /<resource>``, ``DELETE /<resource>/{id}``,
    ``GET /<resource>/last-modified`` and the ``/auth`` endpoints."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            log.warning("origin_unreachable", method=method, path=path, error=str(exc))
            raise CatalogError(
                ErrorCode.ORIGIN_UNAVAILABLE,
                f"Could not reach origin for {method} {path}: {exc}",
                recoverable=True,
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            if response.is_error:
                raise self._rejection(response, None)
            raise CatalogError(
                ErrorCode.ORIGIN_INVALID_RESPONSE,
                f"Origin returned a non-JSON body for {method} {path}",
                recoverable=True,
            )

        if response.is_error or body.get("success") is False:
            raise self._rejection(response, body.get("error"))

        log.debug("origin_response", method=method, path=path, status=response.status_code)
        return body

    @staticmethod
    def _rejection(response: httpx.Response, error: Any) -> CatalogError:
        status = response.status_code
        message = str(error) if error else f"Origin responded with HTTP {status}"
        code = ErrorCode.NOT_FOUND if status == 404 else ErrorCode.ORIGIN_REJECTED
        log.warning("origin_rejected", url=str(response.request.url), status=status, error=message)
        return CatalogError(code, message, recoverable=status >= 500)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list_items(self, resource: str) -> list[Any]:
        body = await self._request("GET", f"/{resource}")
        data = body.get("data")
        if not isinstance(data, list):
            raise CatalogError(
                ErrorCode.ORIGIN_INVALID_RESPONSE,
                f"Expected a list under 'data' for /{resource}",
                recoverable=True,
            )
        return data

    async def replace_items(self, resource: str, items: list[Any]) -> None:
        """Overwrite the whole collection at the origin."""
        await self._request("POST", f"/{resource}", json={"data": items})

    async def delete_item(self, resource: str, item_id: str) -> None:
        await self._request("DELETE", f"/{resource}/{item_id}")

    async def upload(
        self,
        resource: str,
        *,
        filename: str,
        content: bytes,
        content_type: str,
        fields: dict[str, str],
    ) -> dict[str, Any]:
        """Multipart upload; returns the record the origin created."""
        body = await self._request(
            "POST",
            f"/{resource}",
            files={"file": (filename, content, content_type)},
            data=fields,
        )
        data = body.get("data")
        if not isinstance(data, dict):
            raise CatalogError(
                ErrorCode.ORIGIN_INVALID_RESPONSE,
                f"Expected the created record under 'data' for /{resource}",
                recoverable=True,
            )
        return data

    async def last_modified(self, resource: str) -> int | None:
        """Cheap staleness probe. Returns epoch millis, or ``None`` if unknown."""
        body = await self._request("GET", f"/{resource}/last-modified")
        value = body.get("lastModified")
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise CatalogError(
                ErrorCode.ORIGIN_INVALID_RESPONSE,
                f"lastModified must be epoch millis, got {value!r}",
                recoverable=True,
            )
        return int(value)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(self, password: str) -> None:
        await self._request("POST", "/auth/login", json={"password": password})

    async def verify(self) -> bool:
        try:
            body = await self._request("GET", "/auth/verify")
        except CatalogError as exc:
            if exc.code is ErrorCode.ORIGIN_REJECTED and not exc.recoverable:
                return False
            raise
        return bool(body.get("authenticated"))

    async def logout(self) -> None:
        await self._request("POST", "/auth/logout")
