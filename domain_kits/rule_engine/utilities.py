"""
Allow-listed utility namespaces available inside rule expressions.

Only what is listed here is reachable from an expression: numeric math,
string/number/boolean conversions, array/object helpers and JSON
encode/decode. Nothing from the host environment (modules, builtins,
attributes of Python objects) is exposed.
"""

from __future__ import annotations

import json
import math
import random
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ExpressionEvaluationError
from .values import (
    UNDEFINED,
    check_array_length,
    is_nullish,
    is_number,
    normalize_number,
    to_integer,
    to_js_string,
    to_number,
    to_plain,
    truthy,
)


class NativeFunction:
    """A host function callable from expressions. May carry static members."""

    def __init__(self, name: str, fn: Callable[..., Any], members: Optional[Mapping[str, Any]] = None):
        self.name = name
        self.fn = fn
        self.members = dict(members or {})

    def call(self, args: List[Any]) -> Any:
        return self.fn(*args)

    def get_member(self, name: str) -> Any:
        return self.members.get(name, UNDEFINED)

    def __repr__(self) -> str:
        return f"<function {self.name}>"


class Namespace:
    """A read-only bag of members (e.g. Math, JSON)."""

    def __init__(self, name: str, members: Mapping[str, Any]):
        self.name = name
        self.members = dict(members)

    def get_member(self, name: str) -> Any:
        return self.members.get(name, UNDEFINED)

    def __repr__(self) -> str:
        return f"<namespace {self.name}>"


def _numeric(fn: Callable[..., float]) -> Callable[..., Any]:
    def wrapper(*args: Any) -> Any:
        nums = [to_number(a) for a in args] or [math.nan]
        try:
            return normalize_number(fn(*nums))
        except (ValueError, ZeroDivisionError):
            return math.nan
        except OverflowError:
            return math.inf

    return wrapper


def _js_round(x: float) -> float:
    if isinstance(x, float) and not math.isfinite(x):
        return x
    return math.floor(x + 0.5)


def _sign(x: float) -> float:
    if isinstance(x, float) and math.isnan(x):
        return x
    return (x > 0) - (x < 0)


def _log(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log(x)


def _min(*args: Any) -> Any:
    nums = [to_number(a) for a in args]
    if any(isinstance(n, float) and math.isnan(n) for n in nums):
        return math.nan
    return normalize_number(min(nums)) if nums else math.inf


def _max(*args: Any) -> Any:
    nums = [to_number(a) for a in args]
    if any(isinstance(n, float) and math.isnan(n) for n in nums):
        return math.nan
    return normalize_number(max(nums)) if nums else -math.inf


def _pow(base: float, exponent: float) -> Any:
    try:
        return normalize_number(math.pow(float(base), float(exponent)))
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


_FLOAT_PREFIX = re.compile(r"^[+-]?(Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)")
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def parse_int(value: Any = UNDEFINED, radix: Any = UNDEFINED) -> Any:
    text = to_js_string(value).strip()
    base = to_integer(radix, 10) if not is_nullish(radix) else 10
    if base == 0:
        base = 10
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if base == 16 and text[:2].lower() == "0x":
        text = text[2:]
    if base < 2 or base > 36:
        return math.nan
    digits = ""
    for ch in text.lower():
        pos = _DIGITS.find(ch)
        if pos < 0 or pos >= base:
            break
        digits += ch
    if not digits:
        return math.nan
    try:
        return normalize_number(sign * int(digits, base))
    except (OverflowError, ValueError):
        # too large for a float, or past the int digit limit
        return sign * math.inf


def parse_float(value: Any = UNDEFINED) -> Any:
    match = _FLOAT_PREFIX.match(to_js_string(value).strip())
    if not match:
        return math.nan
    text = match.group(0)
    if text.endswith("Infinity"):
        return -math.inf if text.startswith("-") else math.inf
    return normalize_number(float(text))


def _is_nan(value: Any = UNDEFINED) -> bool:
    num = to_number(value)
    return isinstance(num, float) and math.isnan(num)


def _is_finite(value: Any = UNDEFINED) -> bool:
    num = to_number(value)
    return not isinstance(num, float) or math.isfinite(num)


def _number_is_integer(value: Any = UNDEFINED) -> bool:
    return is_number(value) and (isinstance(value, int) or (math.isfinite(value) and value.is_integer()))


def _json_ready(value: Any) -> Any:
    try:
        return to_plain(value)
    except ExpressionEvaluationError:
        return None


def json_stringify(value: Any = UNDEFINED, replacer: Any = UNDEFINED, indent: Any = UNDEFINED) -> Any:
    if value is UNDEFINED:
        return UNDEFINED
    spaces = to_integer(indent, 0) if is_number(indent) else 0
    if spaces > 0:
        return json.dumps(_json_ready(value), indent=min(spaces, 10), ensure_ascii=False)
    return json.dumps(_json_ready(value), separators=(",", ":"), ensure_ascii=False)


def json_parse(text: Any = UNDEFINED) -> Any:
    try:
        value = json.loads(to_js_string(text))
    except ValueError as e:
        raise ExpressionEvaluationError(f"JSON.parse failed: {e}") from e
    if isinstance(value, list):
        check_array_length(value)
    return value


def _object_keys(value: Any = UNDEFINED) -> List[str]:
    if isinstance(value, dict):
        return [str(k) for k in value]
    if isinstance(value, list):
        return [str(i) for i in range(len(value))]
    return []


def _object_values(value: Any = UNDEFINED) -> List[Any]:
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, list):
        return list(value)
    return []


def _object_entries(value: Any = UNDEFINED) -> List[List[Any]]:
    if isinstance(value, dict):
        return [[str(k), v] for k, v in value.items()]
    if isinstance(value, list):
        return [[str(i), v] for i, v in enumerate(value)]
    return []


def _string(value: Any = "") -> str:
    return to_js_string(value)


def _number(value: Any = 0) -> Any:
    return to_number(value)


def _boolean(value: Any = UNDEFINED) -> bool:
    return truthy(value)


MATH = Namespace(
    "Math",
    {
        "PI": math.pi,
        "E": math.e,
        "LN2": math.log(2),
        "LN10": math.log(10),
        "SQRT2": math.sqrt(2),
        "abs": NativeFunction("abs", _numeric(lambda x, *_: abs(x))),
        "ceil": NativeFunction("ceil", _numeric(lambda x, *_: math.ceil(x) if math.isfinite(x) else x)),
        "floor": NativeFunction("floor", _numeric(lambda x, *_: math.floor(x) if math.isfinite(x) else x)),
        "round": NativeFunction("round", _numeric(lambda x, *_: _js_round(x))),
        "trunc": NativeFunction("trunc", _numeric(lambda x, *_: math.trunc(x) if math.isfinite(x) else x)),
        "sign": NativeFunction("sign", _numeric(lambda x, *_: _sign(x))),
        "sqrt": NativeFunction("sqrt", _numeric(lambda x, *_: math.sqrt(x))),
        "cbrt": NativeFunction("cbrt", _numeric(lambda x, *_: math.copysign(abs(x) ** (1.0 / 3.0), x))),
        "exp": NativeFunction("exp", _numeric(lambda x, *_: math.exp(x))),
        "log": NativeFunction("log", _numeric(lambda x, *_: _log(x))),
        "log10": NativeFunction("log10", _numeric(lambda x, *_: math.log10(x) if x else -math.inf)),
        "log2": NativeFunction("log2", _numeric(lambda x, *_: math.log2(x) if x else -math.inf)),
        "hypot": NativeFunction("hypot", _numeric(lambda *xs: math.hypot(*xs))),
        "pow": NativeFunction("pow", lambda b=UNDEFINED, e=UNDEFINED, *_: _pow(to_number(b), to_number(e))),
        "min": NativeFunction("min", _min),
        "max": NativeFunction("max", _max),
        "random": NativeFunction("random", lambda *_: random.random()),
    },
)

JSON_NAMESPACE = Namespace(
    "JSON",
    {
        "stringify": NativeFunction("stringify", json_stringify),
        "parse": NativeFunction("parse", json_parse),
    },
)

ARRAY_NAMESPACE = Namespace(
    "Array",
    {"isArray": NativeFunction("isArray", lambda value=UNDEFINED, *_: isinstance(value, list))},
)

OBJECT_NAMESPACE = Namespace(
    "Object",
    {
        "keys": NativeFunction("keys", _object_keys),
        "values": NativeFunction("values", _object_values),
        "entries": NativeFunction("entries", _object_entries),
    },
)


def _build_utilities() -> Dict[str, Any]:
    return {
        "Math": MATH,
        "JSON": JSON_NAMESPACE,
        "Array": ARRAY_NAMESPACE,
        "Object": OBJECT_NAMESPACE,
        "parseInt": NativeFunction("parseInt", parse_int),
        "parseFloat": NativeFunction("parseFloat", parse_float),
        "isNaN": NativeFunction("isNaN", _is_nan),
        "isFinite": NativeFunction("isFinite", _is_finite),
        "String": NativeFunction("String", _string),
        "Number": NativeFunction(
            "Number",
            _number,
            {
                "isInteger": NativeFunction("isInteger", _number_is_integer),
                "isFinite": NativeFunction("isFinite", lambda v=UNDEFINED, *_: is_number(v) and _is_finite(v)),
                "isNaN": NativeFunction("isNaN", lambda v=UNDEFINED, *_: is_number(v) and _is_nan(v)),
                "MAX_SAFE_INTEGER": 2 ** 53 - 1,
            },
        ),
        "Boolean": NativeFunction("Boolean", _boolean),
    }


SAFE_UTILITIES: Dict[str, Any] = _build_utilities()
UTILITY_NAMES = frozenset(SAFE_UTILITIES)
