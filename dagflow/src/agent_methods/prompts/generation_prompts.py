"""
WORKFLOW GENERATION PROMPTS
===========================

System prompt, retry message and tool contracts for the DAG-generation
agent. The `create_workflow` tool schema is the structured output of a
generation; `list_services` and `get_service_endpoints` are the discovery
tools offered in agentic mode.
"""
from typing import Dict, List, Optional, Sequence

from pydantic_ai.tools import ToolDefinition

from ..data_models.dag_spec import AUDIENCE_TYPES, CATEGORIES, CHANNELS, ValidationIssue
from ...utilities.node_type_registry import NodeTypeRegistry, get_default_registry

CREATE_WORKFLOW = "create_workflow"
LIST_SERVICES = "list_services"
GET_SERVICE_ENDPOINTS = "get_service_endpoints"


# -----------------------------
# Tool contracts
# -----------------------------

CREATE_WORKFLOW_SCHEMA = {
    "type": "object",
    "properties": {
        "category": {"type": "string", "enum": list(CATEGORIES), "description": "Workflow category"},
        "channel": {"type": "string", "enum": list(CHANNELS), "description": "Distribution channel"},
        "audienceType": {"type": "string", "enum": list(AUDIENCE_TYPES), "description": "Audience type"},
        "description": {
            "type": "string",
            "description": "Human-readable description of what this workflow does (1-2 sentences)",
        },
        "dag": {
            "type": "object",
            "properties": {
                "nodes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "type": {"type": "string"},
                            "config": {"type": "object"},
                            "inputMapping": {"type": "object"},
                            "retries": {"type": "number"},
                        },
                        "required": ["id", "type"],
                    },
                },
                "edges": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "from": {"type": "string"},
                            "to": {"type": "string"},
                            "condition": {"type": "string"},
                        },
                        "required": ["from", "to"],
                    },
                },
                "onError": {"type": "string"},
            },
            "required": ["nodes", "edges"],
        },
    },
    "required": ["category", "channel", "audienceType", "description", "dag"],
}

CREATE_WORKFLOW_TOOL = ToolDefinition(
    name=CREATE_WORKFLOW,
    description="Create a valid DAG workflow with dimensions based on the user's description",
    parameters_json_schema=CREATE_WORKFLOW_SCHEMA,
)

LIST_SERVICES_TOOL = ToolDefinition(
    name=LIST_SERVICES,
    description=(
        "List all available microservices in the platform. Returns service name, description "
        "and endpoint summaries. Call this first to learn which services exist."
    ),
    parameters_json_schema={"type": "object", "properties": {}, "required": []},
)

GET_SERVICE_ENDPOINTS_TOOL = ToolDefinition(
    name=GET_SERVICE_ENDPOINTS,
    description=(
        "Get the full OpenAPI specification of one service: endpoint paths, request and "
        "response schemas, required fields. Call this for every service the workflow uses."
    ),
    parameters_json_schema={
        "type": "object",
        "properties": {
            "service": {"type": "string", "description": "The service name (e.g. 'lead', 'campaign', 'brand')"},
        },
        "required": ["service"],
    },
)


def get_tools(agentic_mode: bool) -> List[ToolDefinition]:
    if agentic_mode:
        return [LIST_SERVICES_TOOL, GET_SERVICE_ENDPOINTS_TOOL, CREATE_WORKFLOW_TOOL]
    return [CREATE_WORKFLOW_TOOL]


# -----------------------------
# Static service catalog (forced mode)
# -----------------------------

SERVICE_CATALOG: List[Dict[str, object]] = [
    {"name": "campaign", "description": "Campaign lifecycle: gate-check (budget validation), start-run, end-run (re-triggers while budget remains)",
     "endpoints": ["POST /internal/gate-check", "POST /internal/start-run", "POST /internal/end-run"]},
    {"name": "lead", "description": "Lead buffer: push leads, pull the next lead for outreach, search leads",
     "endpoints": ["POST /buffer/next", "POST /buffer/push", "GET /leads"]},
    {"name": "brand", "description": "Brand intelligence: company and sales profiles, tone of voice",
     "endpoints": ["GET /brands/:id", "POST /sales-profile"]},
    {"name": "content-generation", "description": "Generated emails and subject lines from stored prompt templates",
     "endpoints": ["POST /generate", "POST /generate/content"]},
    {"name": "email-gateway", "description": "Low-level email sending through the configured provider",
     "endpoints": ["POST /send"]},
    {"name": "transactional-email", "description": "Template-based transactional emails by event type",
     "endpoints": ["POST /send", "GET /stats"]},
    {"name": "runs", "description": "Execution tracking: create runs, add costs, mark complete or failed",
     "endpoints": ["POST /runs/start", "POST /runs/end", "POST /runs/:id/costs"]},
    {"name": "client", "description": "Users and contacts of an app",
     "endpoints": ["POST /users", "GET /users", "PUT /users/:id"]},
    {"name": "stripe", "description": "Stripe products, prices, checkout sessions and coupons",
     "endpoints": ["POST /products", "POST /prices", "POST /checkout-sessions"]},
    {"name": "twilio", "description": "SMS sending",
     "endpoints": ["POST /send"]},
    {"name": "reply-qualification", "description": "Classification of email replies (interested, bounce, ...)",
     "endpoints": ["POST /qualify"]},
    {"name": "journalists", "description": "Journalist database for PR outreach",
     "endpoints": ["GET /journalists", "GET /journalists/:id"]},
    {"name": "outlets", "description": "Media outlets for PR outreach",
     "endpoints": ["GET /outlets", "GET /outlets/:id"]},
    {"name": "scraping", "description": "Structured data extraction from URLs",
     "endpoints": ["POST /scrape"]},
]


def format_service_catalog(filter_services: Optional[Sequence[str]] = None) -> str:
    services = SERVICE_CATALOG
    if filter_services:
        services = [s for s in SERVICE_CATALOG if s["name"] in filter_services]
    return "\n".join(
        f"- **{s['name']}**: {s['description']}\n  Endpoints: {', '.join(s['endpoints'])}"
        for s in services
    )


# -----------------------------
# System prompt
# -----------------------------

DAG_FORMAT_SECTION = """## DAG Format

A workflow DAG has:
- **nodes**: steps. Each node: { id (kebab-case string), type (string), config? (object), inputMapping? (object), retries? (number) }
- **edges**: { from, to, condition? } pairs defining execution order.
- **onError**: optional node id that runs when any step fails.

## Recommended Node Type: http.call

Use "http.call" for service calls. Config:
- service: service name, resolved to the {SERVICE}_SERVICE_URL variable
- method: GET, POST, PUT or DELETE
- path: endpoint path
- body (optional): static request body
- query (optional): query parameters

## Flow Control Node Types

- "condition": branching. Outgoing edges WITH a condition expression start a branch; targets fed only from that branch are nested inside it. Outgoing edges WITHOUT a condition run after the branch completes.
- "wait": delay. config: { seconds: number }
- "for-each": loop. config: { iterator: JS expression, parallel?: boolean, skipFailures?: boolean }

## Input Mapping ($ref syntax)

- "$ref:flow_input.fieldName": a run input
- "$ref:node-id.output.fieldName": a field of an earlier node's output
- "$ref:node-id.output": the whole output of an earlier node

Dot-notation keys build nested objects:
- "body.campaignId": "$ref:flow_input.campaignId" gives body: { campaignId: ... }
- "body.metadata.source": "$ref:flow_input.source" gives body: { metadata: { source: ... } }

Static body fields go in config.body; dynamic overrides go in inputMapping.

## Special Config Keys (not passed to the script)

- retries (number): retry attempts, default 3. Use 0 for non-idempotent steps (email sends, SMS, queue pops).
- stopAfterIf (string): JS expression over "result"; ends the whole flow gracefully when true, without onError.
- skipIf (string): JS expression over "results.<module_id>"; skips only this step when true."""

RULES_SECTION = """## Rules

1. Node ids are unique, kebab-case and descriptive ("fetch-lead", "send-email")
2. Edges must not form a cycle
3. Every $ref names an existing node id or flow_input
4. retries: 0 for non-idempotent operations
5. Use onError for cleanup on failure (e.g. an end-run step that reports failure)
6. Use "condition" nodes for branching; skipIf only skips a single step
7. appId and serviceEnvs are injected from flow_input automatically; do not map them
8. Campaign workflows follow the chassis gate-check -> start-run -> ... -> end-run, with onError -> end-run-error

## Example

```json
{
  "nodes": [
    {"id": "gate-check", "type": "http.call",
     "config": {"service": "campaign", "method": "POST", "path": "/internal/gate-check", "stopAfterIf": "result.allowed == false"},
     "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"}},
    {"id": "fetch-lead", "type": "http.call",
     "config": {"service": "lead", "method": "POST", "path": "/buffer/next"},
     "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"}, "retries": 0},
    {"id": "check-lead", "type": "condition"},
    {"id": "email-generate", "type": "http.call",
     "config": {"service": "content-generation", "method": "POST", "path": "/generate"},
     "inputMapping": {"body.lead": "$ref:fetch-lead.output.lead"}, "retries": 0},
    {"id": "end-run", "type": "http.call",
     "config": {"service": "campaign", "method": "POST", "path": "/internal/end-run", "body": {"success": true}},
     "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"}},
    {"id": "end-run-error", "type": "http.call",
     "config": {"service": "campaign", "method": "POST", "path": "/internal/end-run", "body": {"success": false}},
     "inputMapping": {"body.campaignId": "$ref:flow_input.campaignId"}}
  ],
  "edges": [
    {"from": "gate-check", "to": "fetch-lead"},
    {"from": "fetch-lead", "to": "check-lead"},
    {"from": "check-lead", "to": "email-generate", "condition": "results.fetch_lead.found == true"},
    {"from": "check-lead", "to": "end-run"}
  ],
  "onError": "end-run-error"
}
```"""

DISCOVERY_SECTION = """## Service Discovery (MANDATORY)

You can query a live API registry. Before generating the workflow:
1. Call list_services to see the available services and their endpoints
2. Call get_service_endpoints for EACH service the workflow uses, to get exact paths, request bodies and response shapes
3. Only then call create_workflow

Never guess endpoint paths or body fields. If a needed endpoint does not exist, adapt the workflow to real endpoints."""


def format_node_types(registry: NodeTypeRegistry) -> str:
    lines = []
    for node_type in registry:
        if registry.is_native(node_type):
            lines.append(f'- "{node_type}" (native flow control)')
        else:
            lines.append(f'- "{node_type}"')
    return "\n".join(lines)


def build_system_prompt(
    filter_services: Optional[Sequence[str]] = None,
    agentic_mode: bool = False,
    style_directive: Optional[str] = None,
    registry: Optional[NodeTypeRegistry] = None,
) -> str:
    registry = registry or get_default_registry()
    if agentic_mode:
        service_section = DISCOVERY_SECTION
    else:
        service_section = f"## Available Services\n\n{format_service_catalog(filter_services)}"

    dimensions = (
        "## Dimension Enums (pick from these)\n\n"
        f"- category: {' | '.join(repr(c) for c in CATEGORIES)}\n"
        f"- channel: {' | '.join(repr(c) for c in CHANNELS)}\n"
        f"- audienceType: {' | '.join(repr(a) for a in AUDIENCE_TYPES)}"
    )
    sections = [
        "You are a workflow architect that generates valid DAG (Directed Acyclic Graph) workflows.",
        DAG_FORMAT_SECTION,
        dimensions,
        service_section,
        f"## All Registered Node Types\n\n{format_node_types(registry)}\n\nPrefer \"http.call\" over legacy named types.",
        RULES_SECTION,
    ]
    if style_directive:
        sections.append(f"## Style Directive\n\n{style_directive}")
    sections.append(
        "Generate a single workflow DAG that fulfills the user's description. "
        f"Use the {CREATE_WORKFLOW} tool to return the result."
    )
    return "\n\n".join(sections)


def build_retry_message(original_description: str, errors: Sequence[ValidationIssue]) -> str:
    error_list = "\n".join(f"- {e.field}: {e.message}" for e in errors)
    return (
        "The DAG you generated was invalid. Fix these errors and try again:\n\n"
        f"{error_list}\n\n"
        f"Original request: {original_description}"
    )
