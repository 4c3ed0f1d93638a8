"""
Value semantics for the expression language.

Rule files are written with JavaScript-style expressions, so conversions,
truthiness and equality follow JavaScript rules over JSON-like Python values:

    dict -> object, list -> array, str -> string, int/float -> number,
    bool -> boolean, None -> null, UNDEFINED -> undefined
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from .errors import EvaluationBudgetExceeded, ExpressionEvaluationError

MAX_SAFE_INTEGER = 2 ** 53
MAX_STRING_LENGTH = 1_000_000
MAX_ARRAY_LENGTH = 100_000

_NUMERIC_STRING = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class _Undefined:
    """Singleton for JavaScript `undefined` (distinct from null/None)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nullish(value: Any) -> bool:
    return value is None or value is UNDEFINED


def normalize_number(value: Any) -> Any:
    """Keep numbers in JSON-friendly form: integral floats become ints."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < MAX_SAFE_INTEGER:
            return int(value)
        return value
    if isinstance(value, int) and abs(value) >= MAX_SAFE_INTEGER:
        return float(value)
    return value


def to_number(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        if _NUMERIC_STRING.match(text):
            return normalize_number(float(text))
        return math.nan
    if isinstance(value, list):
        if not value:
            return 0
        if len(value) == 1:
            return to_number(value[0])
    return math.nan


def to_integer(value: Any, default: int = 0) -> int:
    if value is UNDEFINED:
        return default
    num = to_number(value)
    if isinstance(num, float):
        if math.isnan(num):
            return 0
        if math.isinf(num):
            return MAX_SAFE_INTEGER if num > 0 else -MAX_SAFE_INTEGER
        return int(num)
    return num


def format_number(value: Any) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_js_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, list):
        return ",".join("" if is_nullish(item) else to_js_string(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    if callable(getattr(value, "call", None)):
        return "function"
    return "[object Object]"


def truthy(value: Any) -> bool:
    if is_nullish(value):
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return len(value) > 0
    return True


def type_of(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if callable(getattr(value, "call", None)):
        return "function"
    return "object"


def strict_equals(left: Any, right: Any) -> bool:
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None and right is None:
        return True
    if left is UNDEFINED and right is UNDEFINED:
        return True
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    if type(left) is type(right) and not isinstance(left, (str, bool, int, float)):
        return left is right
    return False


def same_value_zero(left: Any, right: Any) -> bool:
    if isinstance(left, float) and isinstance(right, float) and math.isnan(left) and math.isnan(right):
        return True
    return strict_equals(left, right)


def loose_equals(left: Any, right: Any) -> bool:
    if is_nullish(left) and is_nullish(right):
        return True
    if is_nullish(left) or is_nullish(right):
        return False
    if isinstance(left, bool):
        return loose_equals(to_number(left), right)
    if isinstance(right, bool):
        return loose_equals(left, to_number(right))
    if is_number(left) and isinstance(right, str):
        return left == to_number(right)
    if isinstance(left, str) and is_number(right):
        return to_number(left) == right
    left_primitive = isinstance(left, str) or is_number(left)
    right_primitive = isinstance(right, str) or is_number(right)
    if isinstance(left, (dict, list)) and right_primitive:
        return loose_equals(to_js_string(left), right)
    if isinstance(right, (dict, list)) and left_primitive:
        return loose_equals(left, to_js_string(right))
    return strict_equals(left, right)


def check_string_length(text: str) -> str:
    if len(text) > MAX_STRING_LENGTH:
        raise ExpressionEvaluationError(f"String result exceeds {MAX_STRING_LENGTH} characters")
    return text


def check_array_length(items: list) -> list:
    # a single step can double an array (acc.concat(acc))
    if len(items) > MAX_ARRAY_LENGTH:
        raise EvaluationBudgetExceeded(f"Array result exceeds {MAX_ARRAY_LENGTH} elements")
    return items


def to_plain(value: Any) -> Any:
    """Convert an expression result to a JSON-compatible value for the state.

    undefined becomes null (JSON has no undefined), NaN/Infinity become null
    (as JSON.stringify does). Functions cannot be stored.
    """
    if value is UNDEFINED or value is None:
        return None
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return normalize_number(value)
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items() if v is not UNDEFINED}
    raise ExpressionEvaluationError(f"Result of type {type_of(value)} cannot be stored in state")


def canonical_json(value: Any) -> str:
    """Stable serialization used for change detection and fingerprints."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
