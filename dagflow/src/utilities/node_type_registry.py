"""
Maps a DAG node "type" to the executable the engine should run for it,
or marks it as a native control construct handled by the compiler itself.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Union

import yaml

from .constants import get_registry_file
from .io_logger import get_component_logger

logger = get_component_logger("NODE_REGISTRY")


@dataclass(frozen=True)
class Executable:
    """A node type backed by an engine script at `path`."""
    path: str


@dataclass(frozen=True)
class NativeConstruct:
    """A node type the compiler translates itself (wait, condition, for-each)."""


RegistryEntry = Union[Executable, NativeConstruct]

NATIVE = NativeConstruct()

WAIT = "wait"
CONDITION = "condition"
FOR_EACH = "for-each"

DEFAULT_ENTRIES: Dict[str, RegistryEntry] = {
    # Live services
    "lead-service": Executable("f/nodes/lead_service"),
    "content-generation": Executable("f/nodes/content_generation"),
    "outbound-sending": Executable("f/nodes/outbound_sending"),
    "brand-intel": Executable("f/nodes/brand_intel"),
    "content-sentiment": Executable("f/nodes/content_sentiment"),
    "lifecycle-emails": Executable("f/nodes/lifecycle_emails"),
    "client-service": Executable("f/nodes/client_service"),
    "http.call": Executable("f/nodes/http_call"),
    "end-run": Executable("f/nodes/end_run"),
    # Mocked services
    "twilio-sms": Executable("f/nodes/twilio_sms"),
    "order-service": Executable("f/nodes/order_service"),
    "product-service": Executable("f/nodes/product_service"),
    "stripe-service": Executable("f/nodes/stripe_service"),
    # Stubs
    "linkedin-dm": Executable("f/nodes/linkedin_dm"),
    "linkedin-connect": Executable("f/nodes/linkedin_connect"),
    "linkedin-post": Executable("f/nodes/linkedin_post"),
    "google-ads": Executable("f/nodes/google_ads"),
    "meta-ads": Executable("f/nodes/meta_ads"),
    # Native constructs
    WAIT: NATIVE,
    CONDITION: NATIVE,
    FOR_EACH: NATIVE,
}


class NodeTypeRegistry(Mapping[str, RegistryEntry]):
    """Immutable lookup table from node type to registry entry."""

    def __init__(self, entries: Optional[Mapping[str, RegistryEntry]] = None):
        self._entries: Dict[str, RegistryEntry] = dict(DEFAULT_ENTRIES if entries is None else entries)

    def __getitem__(self, node_type: str) -> RegistryEntry:
        return self._entries[node_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def is_known(self, node_type: str) -> bool:
        return node_type in self._entries

    def is_native(self, node_type: str) -> bool:
        return isinstance(self._entries.get(node_type), NativeConstruct)

    def script_path(self, node_type: str) -> Optional[str]:
        entry = self._entries.get(node_type)
        return entry.path if isinstance(entry, Executable) else None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Optional[str]]) -> "NodeTypeRegistry":
        """Build from a plain `{type: path-or-None}` mapping; None marks a native construct."""
        entries: Dict[str, RegistryEntry] = {}
        for node_type, path in raw.items():
            if path is None:
                entries[node_type] = NATIVE
            elif isinstance(path, str) and path:
                entries[node_type] = Executable(path)
            else:
                raise ValueError(f"Invalid registry entry for '{node_type}': {path!r}")
        return cls(entries)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "NodeTypeRegistry":
        with Path(path).open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Registry file {path} must contain a mapping")
        registry = cls.from_mapping(raw.get("node_types", raw))
        logger.info("Loaded node-type registry", data={"file": str(path), "types": len(registry)})
        return registry


_default_registry: Optional[NodeTypeRegistry] = None


def get_default_registry() -> NodeTypeRegistry:
    """Registry loaded once per process: NODE_TYPE_REGISTRY_FILE if set, else the built-in table."""
    global _default_registry
    if _default_registry is None:
        registry_file = get_registry_file()
        _default_registry = NodeTypeRegistry.from_yaml(registry_file) if registry_file else NodeTypeRegistry()
    return _default_registry
