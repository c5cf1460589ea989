import os
from typing import Dict, Mapping, Optional

EXCLUDED_KEYS = frozenset({
    "WINDMILL_SERVER_URL",
    "WINDMILL_SERVER_API_KEY",
    "WINDMILL_SERVICE_DATABASE_URL",
})


def collect_service_envs(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Service URLs and API keys handed to every run as `flow_input.serviceEnvs`,
    so node scripts can reach the services without engine-side configuration.

    Picks up `*_SERVICE_URL` / `*_SERVICE_API_KEY`, plus legacy `*_URL` /
    `*_API_KEY` names outside the engine's own settings and databases.
    """
    environ = os.environ if environ is None else environ
    envs: Dict[str, str] = {}
    for key, value in environ.items():
        if not value or key in EXCLUDED_KEYS or key.startswith("RAILWAY_"):
            continue
        if key.endswith("_SERVICE_URL") or key.endswith("_SERVICE_API_KEY"):
            envs[key] = value
        elif (
            (key.endswith("_URL") or key.endswith("_API_KEY"))
            and not key.startswith("WINDMILL_")
            and "DATABASE" not in key
        ):
            envs[key] = value
    return envs
