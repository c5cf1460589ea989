"""
Signature-based deployment of DAG variants.

A DAG is identified within an app by its signature, so deploying the same
DAG twice updates one record instead of creating a duplicate. New variants
get a human-readable name (a signature word, or a versioned style name) and
a flow path derived from it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from sqlalchemy.exc import IntegrityError

from ..agent_methods.data_models.dag_spec import DAG
from ..workflow_store import WORKFLOW_ACTIVE, WORKFLOW_DELETED, WorkflowRecord, WorkflowStore
from .dag_signature import compute_signature
from .dag_validator import validate_dag
from .engine_client import EngineClient
from .errors import DagflowError, ExternalEngineError, WorkflowNotFoundError
from .io_logger import get_component_logger
from .node_type_registry import NodeTypeRegistry, get_default_registry
from .plan_compiler import PlanCompiler
from .signature_words import pick_signature_name, pick_style_name

logger = get_component_logger("DEPLOYMENT", grouped=True)

MAX_INSERT_ATTEMPTS = 3


def generate_flow_path(scope: str, name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    return f"f/workflows/{scope}/{slug}"


@dataclass
class DeploymentResult:
    workflow: WorkflowRecord
    action: Literal["created", "updated"]
    engine_synced: bool


class WorkflowDeployer:
    def __init__(
        self,
        store: WorkflowStore,
        engine_client: Optional[EngineClient] = None,
        registry: Optional[NodeTypeRegistry] = None,
    ):
        self.store = store
        self.engine_client = engine_client
        self.registry = registry or get_default_registry()
        self.compiler = PlanCompiler(self.registry)

    async def deploy(
        self,
        app_id: str,
        dag: DAG,
        description: Optional[str] = None,
        category: Optional[str] = None,
        channel: Optional[str] = None,
        audience_type: Optional[str] = None,
        style_name: Optional[str] = None,
    ) -> DeploymentResult:
        """
        Validate, compile and upsert `dag` for `app_id`.

        Raises StructuralValidationError for an invalid DAG. Engine failures
        are logged and reported through `engine_synced`; the record is kept
        so a later deploy can push it again.
        """
        validate_dag(dag, self.registry).raise_for_errors()
        signature = compute_signature(dag)

        with logger.group(f"Deploy {signature[:12]} for {app_id}"):
            existing = await self.store.find_by_signature(app_id, signature, include_deleted=True)
            if existing is not None:
                return await self._update(existing, dag, description, category, channel, audience_type)

            for _ in range(MAX_INSERT_ATTEMPTS):
                name = await self._choose_name(app_id, signature, style_name)
                flow_path = generate_flow_path(app_id, name)
                flow = self.compiler.compile(dag, name).to_openflow()
                try:
                    record = await self.store.insert_workflow(
                        app_id=app_id,
                        name=name,
                        description=description,
                        category=category,
                        channel=channel,
                        audience_type=audience_type,
                        style_name=style_name,
                        signature=signature,
                        signature_name=name,
                        dag=dag.to_json_dict(),
                        flow_path=flow_path,
                    )
                except IntegrityError:
                    # Another deploy claimed this signature or name first
                    winner = await self.store.find_by_signature(app_id, signature, include_deleted=True)
                    if winner is not None:
                        logger.info("Signature deployed concurrently; updating winner", data={"name": winner.name})
                        return await self._update(winner, dag, description, category, channel, audience_type)
                    logger.warning("Name taken concurrently; picking another", data={"name": name})
                    continue

                synced = await self._push(record, flow, create=True)
                logger.success(f"Created '{name}'", data={"flow_path": flow_path, "engine_synced": synced})
                return DeploymentResult(workflow=record, action="created", engine_synced=synced)

        raise DagflowError(f"Could not assign a unique name for signature {signature} in app {app_id}")

    async def _choose_name(self, app_id: str, signature: str, style_name: Optional[str]) -> str:
        used = await self.store.used_signature_names(app_id)
        if style_name:
            return pick_style_name(style_name, used)
        return pick_signature_name(signature, used)

    async def _update(
        self,
        existing: WorkflowRecord,
        dag: DAG,
        description: Optional[str],
        category: Optional[str],
        channel: Optional[str],
        audience_type: Optional[str],
    ) -> DeploymentResult:
        flow = self.compiler.compile(dag, existing.name).to_openflow()
        revived = existing.is_deleted
        record = await self.store.update_workflow(
            existing.id,
            status=WORKFLOW_ACTIVE,
            description=description if description is not None else existing.description,
            category=category or existing.category,
            channel=channel or existing.channel,
            audience_type=audience_type or existing.audience_type,
            dag=dag.to_json_dict(),
        )
        # A deleted variant no longer has a flow on the engine
        synced = await self._push(record, flow, create=revived)
        logger.info(f"Updated '{record.name}'", data={
            "flow_path": record.flow_path, "engine_synced": synced, "revived": revived,
        })
        return DeploymentResult(workflow=record, action="updated", engine_synced=synced)

    async def _push(self, record: WorkflowRecord, flow: Dict[str, Any], create: bool) -> bool:
        if self.engine_client is None or not record.flow_path:
            return False
        try:
            if create:
                await self.engine_client.create_flow(
                    record.flow_path, flow["summary"], flow["value"],
                    description=record.description, schema=flow["schema"],
                )
            else:
                await self.engine_client.update_flow(
                    record.flow_path, flow["value"], summary=flow["summary"],
                    description=record.description, schema=flow["schema"],
                )
        except ExternalEngineError as e:
            logger.error("Failed to push flow to engine", data={"flow_path": record.flow_path, "error": str(e)})
            return False
        return True

    async def delete(self, workflow_id: str) -> WorkflowRecord:
        """
        Soft-delete a workflow.

        The engine flow is removed best-effort; the record stays (marked
        deleted) so its signature and name remain reserved. Deploying the same
        DAG again revives it.
        """
        record = await self.store.get_workflow(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(workflow_id)

        if self.engine_client is not None and record.flow_path:
            try:
                await self.engine_client.delete_flow(record.flow_path)
            except ExternalEngineError as e:
                logger.error("Failed to delete flow on engine", data={"flow_path": record.flow_path, "error": str(e)})

        record = await self.store.update_workflow(workflow_id, status=WORKFLOW_DELETED)
        logger.info(f"Deleted '{record.name}'", data={"flow_path": record.flow_path})
        return record
