from __future__ import annotations

from typing import Any, Dict, List, Tuple

from .errors import PathError


def split_path(path: str) -> List[str]:
    """Split a dot-path, rejecting empty paths and empty segments."""
    if not isinstance(path, str) or path == "":
        raise PathError("Path must be a non-empty string")
    keys = path.split(".")
    if any(k == "" for k in keys):
        raise PathError(f"Path {path!r} has an empty segment")
    return keys


def get_path(obj: Any, path: str) -> Tuple[bool, Any]:
    """Return (found, value) for dotted dict paths.

    Supported: dict traversal only (no array indexing).
    """
    cur = obj
    for key in split_path(path):
        if not isinstance(cur, dict):
            return False, None
        if key not in cur:
            return False, None
        cur = cur[key]
    return True, cur


def set_path(state: Dict[str, Any], path: str, value: Any) -> None:
    """Set `value` at dot-path in place, creating/overwriting intermediate objects."""
    keys = split_path(path)
    cur = state
    for key in keys[:-1]:
        if not isinstance(cur.get(key), dict):
            cur[key] = {}
        cur = cur[key]
    cur[keys[-1]] = value
