import os
from dataclasses import dataclass
from functools import cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_DEFAULT_MODEL = "gpt-4o"
_DEFAULT_API_BASE = "https://api.openai.com/v1"
_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///dagflow.db"
_DEFAULT_POLL_INTERVAL = 10.0
_DEFAULT_TRACE_HISTORY_LIMIT = 200


def load_settings_env(env_file: str | Path = "creds.env") -> bool:
    """Load a dotenv file into the process environment if it exists."""
    env_path = Path(env_file)
    if not env_path.exists():
        return False
    return load_dotenv(env_path)


def _get_env_var(suffix, default=None):
    for prefix in ("DAGFLOW", "OPENAI_API"):
        if value := os.getenv(f"{prefix}_{suffix}", ""):
            return value
    return default


@cache
def get_api_url() -> str:
    url = os.getenv("OPENAI_API_BASE") or _get_env_var("BASE_URL", _DEFAULT_API_BASE)
    return url.rstrip("/")


@cache
def get_base_model() -> str:
    return os.getenv("MODEL_NAME") or _get_env_var("MODEL", _DEFAULT_MODEL)


@cache
def get_api_key() -> Optional[str]:
    return _get_env_var("KEY")


def get_database_url() -> str:
    return os.getenv("DAGFLOW_DATABASE_URL", _DEFAULT_DATABASE_URL)


def get_poll_interval() -> float:
    raw = os.getenv("JOB_POLL_INTERVAL_SECONDS")
    if not raw:
        return _DEFAULT_POLL_INTERVAL
    return float(raw)


def get_registry_file() -> Optional[str]:
    return os.getenv("NODE_TYPE_REGISTRY_FILE") or None


def structured_logging_enabled() -> bool:
    return os.getenv("DAGFLOW_STRUCTURED_LOGS", "").lower() in ("1", "true", "yes")


def get_trace_history_limit() -> int:
    return int(os.getenv("DAGFLOW_TRACE_HISTORY_LIMIT", _DEFAULT_TRACE_HISTORY_LIMIT))


@dataclass(frozen=True)
class EngineSettings:
    """Connection settings for the workflow-execution engine."""
    base_url: str
    token: str
    workspace: str = "prod"
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> Optional["EngineSettings"]:
        load_settings_env()
        base_url = os.getenv("WINDMILL_SERVER_URL")
        token = os.getenv("WINDMILL_SERVER_API_KEY")
        if not base_url or not token:
            return None
        return cls(
            base_url=base_url.rstrip("/"),
            token=token,
            workspace=os.getenv("WINDMILL_SERVER_WORKSPACE") or "prod",
        )


@dataclass(frozen=True)
class RegistrySettings:
    """Connection settings for the service discovery registry."""
    base_url: str
    api_key: str

    @classmethod
    def from_env(cls) -> Optional["RegistrySettings"]:
        load_settings_env()
        base_url = os.getenv("API_REGISTRY_SERVICE_URL")
        api_key = os.getenv("API_REGISTRY_SERVICE_API_KEY")
        if not base_url or not api_key:
            return None
        return cls(base_url=base_url.rstrip("/"), api_key=api_key)
