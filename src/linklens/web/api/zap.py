"""Proxy routes for the OWASP ZAP API."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from linklens.tools.zap import ZapClient

router = APIRouter(prefix="/zap", tags=["zap"])


class ZapTarget(BaseModel):
    targetUrl: str
    zapUrl: str | None = None
    zapApiKey: str | None = None


def _client(request: Request, zap_url: str | None = None, api_key: str | None = None) -> ZapClient:
    """ZAP location from config, optionally overridden per request."""
    config = request.app.state.config
    zap_url = zap_url or request.query_params.get("zapUrl") or config.zap_url
    if api_key is None:
        api_key = request.query_params.get("zapApiKey", config.zap_api_key)
    return ZapClient(zap_url, api_key)


@router.get("/health")
async def zap_health(request: Request):
    client = _client(request)
    version = await client.health()
    return {"ok": True, "version": version, "zapUrl": client.base_url}


@router.post("/spider")
async def start_spider(body: ZapTarget, request: Request):
    client = _client(request, body.zapUrl, body.zapApiKey)
    scan_id = await client.start_spider(body.targetUrl)
    return {"scanId": scan_id, "target": body.targetUrl}


@router.get("/spider/{scan_id}")
async def spider_status(scan_id: str, request: Request):
    return {"status": await _client(request).spider_status(scan_id)}


@router.get("/spider/{scan_id}/results")
async def spider_results(scan_id: str, request: Request):
    return {"urls": await _client(request).spider_results(scan_id)}


@router.post("/activescan")
async def start_active_scan(body: ZapTarget, request: Request):
    client = _client(request, body.zapUrl, body.zapApiKey)
    scan_id = await client.start_active_scan(body.targetUrl)
    return {"scanId": scan_id, "target": body.targetUrl}


@router.get("/activescan/{scan_id}")
async def active_scan_status(scan_id: str, request: Request):
    return {"status": await _client(request).active_scan_status(scan_id)}


@router.get("/alerts")
async def alerts(request: Request, baseUrl: str | None = None):
    return {"alerts": await _client(request).alerts(baseUrl)}
