"""
Shared pytest fixtures for the dagflow test suite.

Persistence tests run against a throwaway SQLite file; engine interactions
go through an in-memory fake that records every call.
"""
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from dagflow.src.agent_methods.data_models.dag_spec import DAG
from dagflow.src.utilities.engine_client import EngineJob
from dagflow.src.utilities.errors import ExternalEngineError
from dagflow.src.workflow_store import WorkflowStore


class FakeEngineClient:
    """Stands in for EngineClient; jobs are set up per test in `jobs`."""

    def __init__(self):
        self.calls: List[Tuple[Any, ...]] = []
        self.jobs: Dict[str, Any] = {}
        self.fail_on: Set[str] = set()
        self._job_counter = 0

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise ExternalEngineError(f"{name} failed", status_code=500)

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def create_flow(self, path, summary, value, description=None, schema=None):
        self._record("create_flow", path, summary, value, schema)
        return path

    async def update_flow(self, path, value, summary=None, description=None, schema=None):
        self._record("update_flow", path, summary, value, schema)

    async def delete_flow(self, path: str) -> None:
        self._record("delete_flow", path)

    async def run_flow(self, path: str, args: Dict[str, Any]) -> str:
        self._record("run_flow", path, args)
        self._job_counter += 1
        return f"job-{self._job_counter}"

    async def get_job(self, job_id: str) -> EngineJob:
        self._record("get_job", job_id)
        job = self.jobs.get(job_id)
        if isinstance(job, Exception):
            raise job
        return job or EngineJob(id=job_id, running=True)

    async def cancel_job(self, job_id: str, reason: Optional[str] = None) -> None:
        self._record("cancel_job", job_id, reason)


@pytest.fixture
def fake_engine() -> FakeEngineClient:
    return FakeEngineClient()


@pytest_asyncio.fixture
async def store(tmp_path):
    store = WorkflowStore(f"sqlite+aiosqlite:///{tmp_path / 'dagflow.db'}")
    await store.init_models()
    yield store
    await store.dispose()


@pytest_asyncio.fixture
async def workflow(store):
    return await store.insert_workflow(
        app_id="app-1",
        name="apex",
        signature="a" * 64,
        signature_name="apex",
        dag={"nodes": [{"id": "send", "type": "http.call"}], "edges": []},
        flow_path="f/workflows/app-1/apex",
    )


@pytest.fixture
def outreach_dag() -> DAG:
    """Gate-check chassis with a branch on the fetched lead and an error handler."""
    return DAG.model_validate({
        "nodes": [
            {
                "id": "gate-check",
                "type": "http.call",
                "config": {
                    "service": "campaign", "method": "POST", "path": "/internal/gate-check",
                    "stopAfterIf": "result.allowed == false",
                },
                "inputMapping": {
                    "body.campaignId": "$ref:flow_input.campaignId",
                    "body.orgId": "$ref:flow_input.orgId",
                },
            },
            {
                "id": "fetch-lead",
                "type": "http.call",
                "config": {"service": "lead", "method": "POST", "path": "/buffer/next"},
                "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"},
                "retries": 0,
            },
            {"id": "check-lead", "type": "condition"},
            {
                "id": "brand-profile",
                "type": "http.call",
                "config": {"service": "brand", "method": "POST", "path": "/sales-profile"},
            },
            {
                "id": "email-generate",
                "type": "http.call",
                "config": {"service": "content-generation", "method": "POST", "path": "/generate"},
                "inputMapping": {
                    "body.lead": "$ref:fetch-lead.output.lead",
                    "body.brandProfile": "$ref:brand-profile.output",
                },
                "retries": 0,
            },
            {
                "id": "email-send",
                "type": "http.call",
                "config": {"service": "email-gateway", "method": "POST", "path": "/send"},
                "inputMapping": {
                    "body.to": "$ref:fetch-lead.output.lead.data.email",
                    "body.subject": "$ref:email-generate.output.subject",
                },
                "retries": 0,
            },
            {
                "id": "end-run",
                "type": "http.call",
                "config": {"service": "campaign", "method": "POST", "path": "/internal/end-run", "body": {"success": True}},
                "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"},
            },
            {
                "id": "end-run-error",
                "type": "http.call",
                "config": {"service": "campaign", "method": "POST", "path": "/internal/end-run", "body": {"success": False}},
                "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"},
            },
        ],
        "edges": [
            {"from": "gate-check", "to": "fetch-lead"},
            {"from": "fetch-lead", "to": "check-lead"},
            {"from": "check-lead", "to": "brand-profile", "condition": "results.fetch-lead.found == true"},
            {"from": "brand-profile", "to": "email-generate"},
            {"from": "email-generate", "to": "email-send"},
            {"from": "check-lead", "to": "end-run"},
        ],
        "onError": "end-run-error",
    })
