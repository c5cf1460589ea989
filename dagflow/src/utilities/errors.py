"""
Exception types raised across dagflow.

Validation problems are reported as data (see dag_validator.ValidationResult);
the exceptions below exist for callers that need to abort a compile, a run
or a generation attempt.
"""
from __future__ import annotations

from typing import Any, Optional


class DagflowError(Exception):
    """Base class for all dagflow errors."""


class StructuralValidationError(DagflowError, ValueError):
    """A DAG failed structural validation."""

    def __init__(self, errors: list[Any], message: str = "Invalid DAG"):
        self.errors = list(errors)
        details = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"{message}: {details}" if details else message)


class CompilationError(DagflowError):
    """A node could not be translated into an execution-plan module."""


class ExternalEngineError(DagflowError):
    """Any failure talking to the workflow-execution engine."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PollError(DagflowError):
    """Reconciling a single run against the engine failed."""

    def __init__(self, run_id: str, cause: BaseException):
        self.run_id = run_id
        self.cause = cause
        super().__init__(f"Polling run {run_id} failed: {cause}")


class RunNotFoundError(DagflowError, KeyError):
    """No run record exists for the given id."""

    def __str__(self) -> str:
        return f"Workflow run not found: {self.args[0]}"


class WorkflowNotFoundError(DagflowError, KeyError):
    """No live workflow exists for the given id (missing or deleted)."""

    def __str__(self) -> str:
        return f"Workflow not found: {self.args[0]}"


class InvalidRunTransitionError(DagflowError):
    """The requested status change is not allowed from the current status."""


class ServiceRegistryError(DagflowError):
    """The service discovery registry returned an error."""


class GenerationError(DagflowError):
    """Base class for workflow generation failures."""


class GenerationValidationError(GenerationError):
    """The model kept producing invalid DAGs after the retry budget."""

    def __init__(self, message: str, errors: list[Any]):
        self.validation_errors = list(errors)
        super().__init__(message)


class GenerationTurnsExhaustedError(GenerationError):
    """The turn budget ran out before a workflow was created."""


class GenerationProtocolError(GenerationError):
    """The model answered a turn without calling any tool."""
