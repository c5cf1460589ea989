"""
Client for the service discovery registry used by agentic generation.

    GET /llm-context        compact summary of every service and endpoint
    GET /openapi/{service}  full OpenAPI document for one service
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .constants import RegistrySettings
from .errors import ServiceRegistryError
from .io_logger import get_component_logger

logger = get_component_logger("SERVICE_REGISTRY")


class ServiceRegistryClient:
    def __init__(self, settings: RegistrySettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.async_client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers={"x-api-key": settings.api_key},
            timeout=30.0,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> Optional["ServiceRegistryClient"]:
        settings = RegistrySettings.from_env()
        if settings is None:
            return None
        return cls(settings)

    async def aclose(self) -> None:
        await self.async_client.aclose()

    async def _get_json(self, path: str) -> Any:
        try:
            response = await self.async_client.get(path)
        except httpx.HTTPError as e:
            raise ServiceRegistryError(f"api-registry request failed: GET {path}: {e}") from e
        if response.is_error:
            raise ServiceRegistryError(
                f"api-registry error: GET {path} -> {response.status_code} {response.reason_phrase}: {response.text}"
            )
        return response.json()

    async def fetch_llm_context(self) -> Dict[str, Any]:
        return await self._get_json("/llm-context")

    async def fetch_service_spec(self, service: str) -> Dict[str, Any]:
        return await self._get_json(f"/openapi/{quote(service, safe='')}")

    async def list_services(self) -> List[Dict[str, Any]]:
        """One compact entry per service: name, description and `METHOD path` endpoint lines."""
        context = await self.fetch_llm_context()
        summary = []
        for service in context.get("services", []):
            endpoints = service.get("endpoints") or []
            summary.append({
                "name": service.get("service"),
                "description": service.get("description") or service.get("title") or "",
                "endpointCount": len(endpoints),
                "endpoints": [f"{e.get('method')} {e.get('path')}" for e in endpoints],
            })
        logger.debug("Listed services", data={"count": len(summary)})
        return summary
