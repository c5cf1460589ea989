from .src.agent_methods.data_models.dag_spec import DAG, DAGEdge, DAGNode, GeneratedWorkflow, ValidationResult
from .src.agent_methods.agents.workflow_generator import GenerationHints, GenerationStyle, WorkflowGenerator
from .src.utilities.dag_validator import validate_dag
from .src.utilities.plan_compiler import compile_dag
from .src.utilities.dag_signature import compute_signature
from .src.utilities.signature_words import pick_signature_name, pick_style_name
from .src.utilities.engine_client import EngineClient
from .src.utilities.deployment import WorkflowDeployer
from .src.utilities.run_lifecycle import RunService
from .src.utilities.job_poller import JobPoller
from .src.workflow_store import RunStatus, WorkflowStore

__version__ = "0.1"

__all__ = [
    ###model###
    "DAG",
    "DAGNode",
    "DAGEdge",
    "ValidationResult",
    "GeneratedWorkflow",
    ###compile###
    "validate_dag",
    "compile_dag",
    ###signature###
    "compute_signature",
    "pick_signature_name",
    "pick_style_name",
    ###engine & runs###
    "EngineClient",
    "WorkflowDeployer",
    "RunService",
    "JobPoller",
    "RunStatus",
    "WorkflowStore",
    ###generation###
    "WorkflowGenerator",
    "GenerationHints",
    "GenerationStyle",
]
