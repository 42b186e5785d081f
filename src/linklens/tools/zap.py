"""Minimal client for the OWASP ZAP JSON API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from linklens.errors import ServiceUnavailable, ToolFailed

logger = logging.getLogger(__name__)

ZAP_NOT_RUNNING_HINT = (
    "ZAP daemon not running. Start it with: zap.sh -daemon -port 8080 "
    "-config api.disablekey=true -config api.addrs.addr.name=.* "
    "-config api.addrs.addr.regex=true, or point ZAP_API_URL at a mock server."
)
ZAP_CONFIG_HINT = "Check ZAP configuration and API key."


class ZapClient:
    """Thin async wrapper; one short-lived HTTP client per call."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def health(self) -> str | None:
        data = await self._get("/JSON/core/view/version/")
        return data.get("version")

    async def start_spider(self, target_url: str) -> str:
        data = await self._get(
            "/JSON/spider/action/scan/",
            {"url": target_url, "recurse": "true", "subtreeOnly": "false"},
        )
        return str(data.get("scan"))

    async def spider_status(self, scan_id: str) -> int:
        data = await self._get("/JSON/spider/view/status/", {"scanId": scan_id})
        return _percent(data.get("status"))

    async def spider_results(self, scan_id: str) -> list[str]:
        data = await self._get(
            "/JSON/spider/view/results/", {"scanId": scan_id}, timeout=10.0
        )
        return list(data.get("results") or [])

    async def start_active_scan(self, target_url: str) -> str:
        data = await self._get(
            "/JSON/ascan/action/scan/",
            {"url": target_url, "recurse": "true", "scanPolicyName": ""},
        )
        return str(data.get("scan"))

    async def active_scan_status(self, scan_id: str) -> int:
        data = await self._get("/JSON/ascan/view/status/", {"scanId": scan_id})
        return _percent(data.get("status"))

    async def alerts(self, base_url: str | None = None) -> list[dict]:
        params: dict[str, Any] = {"start": 0, "count": 1000}
        if base_url:
            params["baseurl"] = base_url
        data = await self._get("/JSON/alert/view/alerts/", params)
        return list(data.get("alerts") or [])

    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict:
        query = dict(params or {})
        if self.api_key.strip():
            query["apikey"] = self.api_key

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=timeout or self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=query)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning("ZAP at %s unreachable: %s", self.base_url, exc)
            raise ServiceUnavailable(
                "ZAP not reachable",
                hint=ZAP_NOT_RUNNING_HINT,
                details=str(exc),
            ) from exc
        except httpx.HTTPError as exc:
            raise ToolFailed("ZAP request failed", hint=ZAP_CONFIG_HINT, details=str(exc)) from exc

        if response.is_error:
            raise ToolFailed(
                f"ZAP returned HTTP {response.status_code}",
                hint=ZAP_CONFIG_HINT,
                details=_body(response),
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ToolFailed("ZAP returned invalid JSON", details=response.text) from exc


def _percent(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
