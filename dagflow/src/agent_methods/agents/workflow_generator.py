"""
Workflow Generator
==================

Turns a natural-language description into a validated DAG with a tool-call
loop against an LLM:

    AWAITING_MODEL -> RESOLVING_TOOLS -> AWAITING_MODEL -> ... -> DONE | FAILED

Forced mode offers only `create_workflow` and requires a tool call.
Agentic mode (a discovery client is supplied) also offers `list_services`
and `get_service_endpoints` so the model can look up real endpoints first.

Two budgets are tracked separately: model turns (MAX_AGENT_TURNS) and
rejected `create_workflow` attempts (MAX_VALIDATION_RETRIES).
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_ai.direct import model_request
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    RetryPromptPart,
    SystemPromptPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from ..data_models.dag_spec import GeneratedWorkflow, ValidationIssue
from ..prompts.generation_prompts import (
    CREATE_WORKFLOW,
    GET_SERVICE_ENDPOINTS,
    LIST_SERVICES,
    build_retry_message,
    build_system_prompt,
    get_tools,
)
from ...utilities.constants import get_api_key, get_api_url, get_base_model, load_settings_env
from ...utilities.dag_validator import validate_dag
from ...utilities.errors import (
    GenerationProtocolError,
    GenerationTurnsExhaustedError,
    GenerationValidationError,
)
from ...utilities.io_logger import get_component_logger, log_trace
from ...utilities.node_type_registry import NodeTypeRegistry, get_default_registry
from ...utilities.service_registry_client import ServiceRegistryClient

logger = get_component_logger("WORKFLOW_GENERATOR", grouped=True)

MAX_AGENT_TURNS = 10
MAX_VALIDATION_RETRIES = 2


# -----------------------------
# Inputs
# -----------------------------


class GenerationHints(BaseModel):
    """Optional steering appended to the user message."""
    services: List[str] = Field(default_factory=list, description="Services the workflow should use.")
    node_types: List[str] = Field(default_factory=list, description="Preferred node types.")
    expected_inputs: List[str] = Field(default_factory=list, description="flow_input fields the caller will provide.")


class GenerationStyle(BaseModel):
    """Whose voice the generated workflow should be built around."""
    type: Literal["human", "brand"]
    name: str
    human_id: Optional[str] = None
    brand_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_identity(self) -> "GenerationStyle":
        if self.type == "human" and not self.human_id:
            raise ValueError("human_id is required for a human style")
        if self.type == "brand" and not self.brand_id:
            raise ValueError("brand_id is required for a brand style")
        return self

    def directive(self) -> str:
        if self.type == "human":
            return (
                f"Write this workflow in the personal voice of {self.name} (humanId: {self.human_id}). "
                f'Content-generation steps should pass "body.humanId": "{self.human_id}" so generated '
                "copy matches this person's tone."
            )
        return (
            f"Write this workflow in the voice of the brand {self.name} (brandId: {self.brand_id}). "
            f'Content-generation steps should pass "body.brandId": "{self.brand_id}" so generated '
            "copy matches the brand's tone."
        )


def build_user_message(description: str, hints: Optional[GenerationHints] = None) -> str:
    message = description
    if hints is None:
        return message
    if hints.services:
        message += f"\n\nRelevant services: {', '.join(hints.services)}"
    if hints.node_types:
        message += f"\nPreferred node types: {', '.join(hints.node_types)}"
    if hints.expected_inputs:
        message += f"\nExpected flow_input fields: {', '.join(hints.expected_inputs)}"
    return message


# -----------------------------
# Loop state
# -----------------------------


class GenerationState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    RESOLVING_TOOLS = "resolving_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass
class GenerationSession:
    description: str
    messages: List[ModelMessage]
    state: GenerationState = GenerationState.AWAITING_MODEL
    turns: int = 0
    validation_failures: int = 0
    pending_calls: List[ToolCallPart] = field(default_factory=list)
    result: Optional[GeneratedWorkflow] = None


def _pydantic_issues(error: ValidationError) -> List[ValidationIssue]:
    return [
        ValidationIssue(field=".".join(str(p) for p in e["loc"]) or "input", message=e["msg"])
        for e in error.errors()
    ]


class WorkflowGenerator:
    """
    Generates workflows from descriptions.

    Args:
        model: a pydantic_ai Model; defaults to an OpenAI-compatible chat model
            configured from the environment.
        discovery_client: enables agentic mode when given.
        registry: node types offered to and validated against the model.
    """

    def __init__(
        self,
        model: Optional[Union[Model, str]] = None,
        discovery_client: Optional[ServiceRegistryClient] = None,
        registry: Optional[NodeTypeRegistry] = None,
    ):
        self.model = model or self._default_model()
        self.discovery_client = discovery_client
        self.registry = registry or get_default_registry()

    @staticmethod
    def _default_model() -> Model:
        load_settings_env()
        return OpenAIChatModel(
            get_base_model(),
            provider=OpenAIProvider(base_url=get_api_url(), api_key=get_api_key()),
        )

    @property
    def agentic_mode(self) -> bool:
        return self.discovery_client is not None

    async def generate_workflow(
        self,
        description: str,
        hints: Optional[GenerationHints] = None,
        style: Optional[GenerationStyle] = None,
    ) -> GeneratedWorkflow:
        system_prompt = build_system_prompt(
            filter_services=hints.services if hints and hints.services else None,
            agentic_mode=self.agentic_mode,
            style_directive=style.directive() if style else None,
            registry=self.registry,
        )
        params = ModelRequestParameters(
            function_tools=get_tools(self.agentic_mode),
            allow_text_output=self.agentic_mode,
        )
        session = GenerationSession(
            description=description,
            messages=[ModelRequest(parts=[
                SystemPromptPart(content=system_prompt),
                UserPromptPart(content=build_user_message(description, hints)),
            ])],
        )

        mode = "agentic" if self.agentic_mode else "forced"
        with logger.group(f"Generate workflow ({mode})"):
            try:
                while session.state not in (GenerationState.DONE, GenerationState.FAILED):
                    if session.state == GenerationState.AWAITING_MODEL:
                        await self._await_model(session, params)
                    else:
                        await self._resolve_tools(session)
            except Exception:
                session.state = GenerationState.FAILED
                raise

            logger.success("Workflow generated", data={
                "turns": session.turns,
                "validation_failures": session.validation_failures,
                "nodes": len(session.result.dag.nodes),
            })
            return session.result

    async def _await_model(self, session: GenerationSession, params: ModelRequestParameters) -> None:
        if session.turns >= MAX_AGENT_TURNS:
            raise GenerationTurnsExhaustedError(
                f"Generation exceeded {MAX_AGENT_TURNS} turns without producing a workflow"
            )
        response: ModelResponse = await model_request(
            self.model, session.messages, model_request_parameters=params
        )
        session.turns += 1

        calls = [part for part in response.parts if isinstance(part, ToolCallPart)]
        log_trace(
            prompt_type="workflow_generation",
            prompt=f"turn {session.turns}",
            response=json.dumps([{"tool": c.tool_name, "args": c.args} for c in calls], default=str),
            metadata={"turn": session.turns},
        )
        if not calls:
            raise GenerationProtocolError("The model did not return a tool call")

        logger.info(f"Turn {session.turns}", data={"tools": [c.tool_name for c in calls]})
        session.messages.append(response)
        session.pending_calls = calls
        session.state = GenerationState.RESOLVING_TOOLS

    async def _resolve_tools(self, session: GenerationSession) -> None:
        calls, session.pending_calls = session.pending_calls, []
        create_call = next((c for c in calls if c.tool_name == CREATE_WORKFLOW), None)

        if create_call is not None:
            parts = self._check_candidate(session, create_call)
            if session.result is not None:
                session.state = GenerationState.DONE
                return
            # Every call of the turn needs an answer; discovery calls beside create_workflow are not run
            for call in calls:
                if call is not create_call:
                    parts.append(ToolReturnPart(
                        tool_name=call.tool_name,
                        content=f"Not executed: {CREATE_WORKFLOW} was called in the same turn.",
                        tool_call_id=call.tool_call_id,
                    ))
        else:
            parts = [await self._run_discovery_tool(call) for call in calls]

        session.messages.append(ModelRequest(parts=parts))
        session.state = GenerationState.AWAITING_MODEL

    def _check_candidate(self, session: GenerationSession, call: ToolCallPart) -> List[ModelRequestPart]:
        """Validate a create_workflow call; sets session.result or returns the retry prompt."""
        try:
            candidate = GeneratedWorkflow.model_validate(call.args_as_dict())
        except ValidationError as e:
            errors = _pydantic_issues(e)
        except ValueError:
            errors = [ValidationIssue(field="input", message="Tool arguments are not valid JSON")]
        else:
            validation = validate_dag(candidate.dag, self.registry)
            if validation.valid:
                session.result = candidate
                return []
            errors = validation.errors

        session.validation_failures += 1
        logger.warning("Generated DAG rejected", data={
            "attempt": session.validation_failures,
            "errors": [f"{e.field}: {e.message}" for e in errors],
        })
        if session.validation_failures > MAX_VALIDATION_RETRIES:
            raise GenerationValidationError("Generated DAG is invalid after retries", errors)

        return [RetryPromptPart(
            content=build_retry_message(session.description, errors),
            tool_name=call.tool_name,
            tool_call_id=call.tool_call_id,
        )]

    async def _run_discovery_tool(self, call: ToolCallPart) -> ModelRequestPart:
        if self.discovery_client is None or call.tool_name not in (LIST_SERVICES, GET_SERVICE_ENDPOINTS):
            return RetryPromptPart(
                content=f"Unknown tool: {call.tool_name}",
                tool_name=call.tool_name,
                tool_call_id=call.tool_call_id,
            )
        try:
            if call.tool_name == LIST_SERVICES:
                content: Any = await self.discovery_client.list_services()
            else:
                service = call.args_as_dict().get("service")
                content = await self.discovery_client.fetch_service_spec(str(service))
        except Exception as e:
            logger.warning(f"{call.tool_name} failed", data={"error": str(e)})
            return RetryPromptPart(
                content=f"Error: {e}",
                tool_name=call.tool_name,
                tool_call_id=call.tool_call_id,
            )
        return ToolReturnPart(
            tool_name=call.tool_name,
            content=json.dumps(content, indent=2),
            tool_call_id=call.tool_call_id,
        )
