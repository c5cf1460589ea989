"""
Async client for the workflow-execution engine (Windmill HTTP API).

The engine is an external collaborator: dagflow only creates/updates/deletes
flows, starts runs and reads or cancels jobs. Every non-2xx answer or
transport failure surfaces as ExternalEngineError.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from .constants import EngineSettings
from .errors import ExternalEngineError
from .io_logger import get_component_logger

logger = get_component_logger("ENGINE_CLIENT")


class EngineJob(BaseModel):
    """The subset of an engine job the run lifecycle cares about."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    running: bool = False
    success: Optional[bool] = None
    result: Any = None
    canceled: Optional[bool] = None
    canceled_reason: Optional[str] = None
    started_at: Optional[str] = None


class EngineClient:
    """
    Thin wrapper around the engine's workspace-scoped REST API.

    Construct it explicitly (or via `from_env`) and pass it to the components
    that need it; there is no process-wide instance.
    """

    def __init__(self, settings: EngineSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.workspace = settings.workspace
        self.async_client = httpx.AsyncClient(
            base_url=f"{settings.base_url.rstrip('/')}/api",
            headers={"Authorization": f"Bearer {settings.token}"},
            timeout=settings.timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> Optional["EngineClient"]:
        """Client configured from WINDMILL_SERVER_* variables, or None when unconfigured."""
        settings = EngineSettings.from_env()
        if settings is None:
            return None
        return cls(settings)

    async def aclose(self) -> None:
        await self.async_client.aclose()

    async def __aenter__(self) -> "EngineClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, body: Any = None, workspace_scoped: bool = True) -> Any:
        url = f"/w/{self.workspace}{path}" if workspace_scoped else path
        try:
            response = await self.async_client.request(method, url, json=body)
        except httpx.HTTPError as e:
            raise ExternalEngineError(f"Engine request failed: {method} {path}: {e}") from e

        if response.is_error:
            raise ExternalEngineError(
                f"Engine API error: {method} {path} -> {response.status_code} {response.reason_phrase}: {response.text}",
                status_code=response.status_code,
            )

        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    # === FLOWS ===

    async def create_flow(
        self,
        path: str,
        summary: str,
        value: Dict[str, Any],
        description: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        payload: Dict[str, Any] = {"path": path, "summary": summary, "value": value}
        if description is not None:
            payload["description"] = description
        if schema is not None:
            payload["schema"] = schema
        await self._request("POST", "/flows/create", payload)
        logger.info("Created flow", data={"path": path})
        return path

    async def update_flow(
        self,
        path: str,
        value: Dict[str, Any],
        summary: Optional[str] = None,
        description: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {"path": path, "value": value}
        if summary is not None:
            payload["summary"] = summary
        if description is not None:
            payload["description"] = description
        if schema is not None:
            payload["schema"] = schema
        await self._request("POST", f"/flows/update/{path}", payload)
        logger.info("Updated flow", data={"path": path})

    async def get_flow(self, path: str) -> Any:
        return await self._request("GET", f"/flows/get/{path}")

    async def delete_flow(self, path: str) -> None:
        await self._request("DELETE", f"/flows/delete/{path}")
        logger.info("Deleted flow", data={"path": path})

    # === JOBS ===

    async def run_flow(self, path: str, args: Dict[str, Any]) -> str:
        """Start a flow run; returns the engine's job id."""
        job_id = await self._request("POST", f"/jobs/run/f/{path}", args)
        if not isinstance(job_id, str):
            job_id = str(job_id)
        return job_id.strip().strip('"')

    async def get_job(self, job_id: str) -> EngineJob:
        data = await self._request("GET", f"/jobs_u/get/{job_id}")
        if not isinstance(data, dict):
            raise ExternalEngineError(f"Unexpected job payload for {job_id}: {data!r}")
        return EngineJob.model_validate(data)

    async def cancel_job(self, job_id: str, reason: Optional[str] = None) -> None:
        await self._request("POST", f"/jobs/queue/cancel/{job_id}", {"reason": reason})

    # === HEALTH ===

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/version", workspace_scoped=False)
        except ExternalEngineError:
            return False
        return True
