"""
Context Builder

Builds the evaluation scope used by conditions and templates.

For state {"user": {"age": 30, "tags": ["a"]}} the context contains:
    user_age  -> 30          (flattened leaf, dots become underscores)
    user_tags -> ["a"]       (arrays are leaves)
    user      -> {...}       (original nested value, for user.age access)
    Math, JSON, parseInt ... (allow-listed utilities)

Precedence on name collisions (lowest to highest):
    utilities < flattened keys < nested top-level keys
so a state field is never shadowed by a same-named builtin.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .utilities import SAFE_UTILITIES


def flatten_state(state: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings to underscore-joined keys. Does not mutate state."""
    flattened: Dict[str, Any] = {}
    for key, value in state.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flattened.update(flatten_state(value, path))
        else:
            flattened[path.replace(".", "_")] = value
    return flattened


def build_context(state: Mapping[str, Any], utilities: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    context: Dict[str, Any] = dict(SAFE_UTILITIES if utilities is None else utilities)
    context.update(flatten_state(state))
    context.update(state)
    return context
