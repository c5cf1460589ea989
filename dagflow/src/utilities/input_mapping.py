"""
Reference resolver: turns a node's static config and its inputMapping into
engine parameters.

    "$ref:node-id.output.field"  -> results.node_id.field
    "$ref:node-id.output.a.b.c"  -> results.node_id.a?.b?.c
    "$ref:flow_input.field"      -> flow_input.field
    anything else                -> static value

Dot-notation keys ("body.campaignId") are collapsed into one object
expression per root parameter, because the engine maps each key to a
function argument by exact name.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..agent_methods.data_models.dag_spec import FLOW_INPUT, REF_PREFIX, is_ref
from ..agent_methods.data_models.module_plan import ExprParam, Param, StaticParam

_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")
_JS_IDENTIFIER = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*$")


def normalize_module_id(node_id: str) -> str:
    """Engine-safe module id: every character outside [A-Za-z0-9_] becomes '_'."""
    return _NON_IDENTIFIER.sub("_", node_id)


def normalize_expression(expr: str, node_ids: Iterable[str]) -> str:
    """Rewrite `results.<node-id>` references to known nodes into their module ids."""
    renamed = sorted((i for i in set(node_ids) if normalize_module_id(i) != i), key=len, reverse=True)
    if not renamed:
        return expr
    pattern = re.compile(
        r"\bresults\.(" + "|".join(re.escape(i) for i in renamed) + r")(?![A-Za-z0-9_-])"
    )
    return pattern.sub(lambda m: f"results.{normalize_module_id(m.group(1))}", expr)


def compile_ref(ref: str) -> str:
    """Compile a `$ref:` string into an engine expression."""
    path = ref[len(REF_PREFIX):]
    if path == FLOW_INPUT or path.startswith(FLOW_INPUT + "."):
        return path

    parts = path.split(".")
    module_id = normalize_module_id(parts[0])
    rest = [p for p in parts[1:] if p != "output"]
    if not rest:
        return f"results.{module_id}"
    if len(rest) == 1:
        return f"results.{module_id}.{rest[0]}"
    # Null-safe access below the first level so a missing intermediate object yields undefined
    return f"results.{module_id}.{rest[0]}" + "".join(f"?.{p}" for p in rest[1:])


def build_input_transforms(
    config: Optional[Mapping[str, Any]] = None,
    input_mapping: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Param]:
    transforms: Dict[str, Param] = {}

    for key, value in (config or {}).items():
        transforms[key] = StaticParam(value)

    for key, value in (input_mapping or {}).items():
        if is_ref(value):
            transforms[key] = ExprParam(compile_ref(value))
        else:
            transforms[key] = StaticParam(value)

    return collapse_dot_notation(transforms)


def _safe_key(key: str) -> str:
    if _JS_IDENTIFIER.match(key):
        return key
    return StaticParam(key).render()


def _static_object(param: Optional[Param]) -> Optional[Dict[str, Any]]:
    if isinstance(param, StaticParam) and isinstance(param.value, dict):
        return param.value
    return None


def collapse_dot_notation(transforms: Dict[str, Param]) -> Dict[str, Param]:
    """Merge `root.child` / `root.parent.child` keys into a single `root` object expression."""
    if not any("." in key for key in transforms):
        return transforms

    result: Dict[str, Param] = {}
    dot_groups: Dict[str, List[Tuple[str, Param]]] = {}

    for key, param in transforms.items():
        root, sep, path = key.partition(".")
        if not sep:
            result[key] = param
        else:
            dot_groups.setdefault(root, []).append((path, param))

    for root, children in dot_groups.items():
        base = _static_object(result.get(root))

        direct_fields: Dict[str, str] = {}
        nested_groups: Dict[str, List[Tuple[str, str]]] = {}
        for path, param in children:
            parent, sep, child = path.partition(".")
            if not sep:
                direct_fields[path] = param.render()
            else:
                nested_groups.setdefault(parent, []).append((child, param.render()))

        parts: List[str] = []
        if base:
            parts.append(f"...{StaticParam(base).render()}")
        for name, expr in direct_fields.items():
            parts.append(f"{_safe_key(name)}: {expr}")
        for parent, subs in nested_groups.items():
            nested_parts: List[str] = []
            parent_base = base.get(parent) if base else None
            if isinstance(parent_base, dict) and parent_base:
                nested_parts.append(f"...{StaticParam(parent_base).render()}")
            for sub_path, expr in subs:
                nested_parts.append(f"{_safe_key(sub_path)}: {expr}")
            parts.append(f"{_safe_key(parent)}: {{{', '.join(nested_parts)}}}")

        result[root] = ExprParam(f"({{{', '.join(parts)}}})")

    return result
