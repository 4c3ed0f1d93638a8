"""
Expression Evaluator

Evaluates rule conditions and `{{ ... }}` template values against a data
context (see context.build_context).

Expressions are parsed into an AST (expression_parser) and walked by a small
interpreter. Nothing is compiled or executed as Python source, and the only
names an expression can reach are the context keys and closure parameters.
Every node visited costs one step; a run that exceeds the step budget raises
EvaluationBudgetExceeded.

Failure policy (callers never see exceptions from these two):
    evaluate_condition -> False
    resolve_template   -> the original template string, unchanged
"""

from __future__ import annotations

import copy
import functools
import math
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .errors import EvaluationBudgetExceeded, ExpressionError, ExpressionEvaluationError
from .expression_parser import (
    MAX_EXPRESSION_LENGTH,
    Arrow,
    ArrayLiteral,
    Binary,
    Call,
    Conditional,
    Index,
    Literal,
    Logical,
    Member,
    Name,
    ObjectLiteral,
    Unary,
    Undefined,
    parse_expression,
)
from .utilities import Namespace, NativeFunction
from .values import (
    MAX_ARRAY_LENGTH,
    MAX_STRING_LENGTH,
    UNDEFINED,
    check_array_length,
    check_string_length,
    format_number,
    is_nullish,
    is_number,
    loose_equals,
    normalize_number,
    same_value_zero,
    strict_equals,
    to_integer,
    to_js_string,
    to_number,
    to_plain,
    truthy,
    type_of,
)

TEMPLATE_PATTERN = re.compile(r"^\{\{\s*(.*)\s*\}\}$", re.DOTALL)

DEFAULT_STEP_LIMIT = 100_000

ErrorCallback = Callable[[str, ExpressionError], None]

ARRAY_METHODS = frozenset(
    [
        "map", "filter", "reduce", "some", "every", "find", "findIndex", "includes",
        "indexOf", "join", "slice", "concat", "reverse", "sort", "toString",
    ]
)
STRING_METHODS = frozenset(
    [
        "toUpperCase", "toLowerCase", "trim", "trimStart", "trimEnd", "includes",
        "startsWith", "endsWith", "split", "slice", "substring", "replace", "indexOf",
        "charAt", "padStart", "padEnd", "repeat", "toString",
    ]
)
NUMBER_METHODS = frozenset(["toFixed", "toString"])

# Python errors that can only come from bad operands inside a native helper.
_HOST_ERRORS = (TypeError, ValueError, ArithmeticError, IndexError, KeyError)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_millis() -> int:
    return int(time.time() * 1000)


def random_uuid() -> str:
    return str(uuid.uuid4())


TEMPLATE_BUILTINS: Dict[str, Callable[[], Any]] = {
    "now()": now_iso,
    "timestamp()": now_millis,
    "uuid()": random_uuid,
}


class Closure:
    """Arrow function value: parameters, body and the defining scope."""

    def __init__(self, interpreter: "Interpreter", node: Arrow, scope: Optional["Scope"]):
        self.interpreter = interpreter
        self.node = node
        self.scope = scope

    def call(self, args: List[Any]) -> Any:
        bindings = {
            name: (args[i] if i < len(args) else UNDEFINED) for i, name in enumerate(self.node.params)
        }
        return self.interpreter.eval(self.node.body, Scope(bindings, self.scope))


class BoundMethod:
    """A builtin method looked up on a value, e.g. `items.map`."""

    def __init__(self, interpreter: "Interpreter", target: Any, name: str):
        self.interpreter = interpreter
        self.target = target
        self.name = name

    def call(self, args: List[Any]) -> Any:
        return self.interpreter.call_method(self.target, self.name, args)


class Scope:
    def __init__(self, bindings: Dict[str, Any], parent: Optional["Scope"]):
        self.bindings = bindings
        self.parent = parent

    def lookup(self, name: str) -> Tuple[bool, Any]:
        scope: Optional[Scope] = self
        while scope is not None:
            if name in scope.bindings:
                return True, scope.bindings[name]
            scope = scope.parent
        return False, None


def _describe(node: Any) -> str:
    if isinstance(node, Name):
        return node.id
    if isinstance(node, Member):
        return f"{_describe(node.obj)}.{node.prop}"
    return "expression"


def _to_primitive(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return to_js_string(value)
    return value


def _divide(left: Any, right: Any) -> Any:
    a, b = to_number(left), to_number(right)
    if b == 0:
        if a == 0 or (isinstance(a, float) and math.isnan(a)):
            return math.nan
        negative = (a < 0) != (math.copysign(1.0, float(b)) < 0)
        return -math.inf if negative else math.inf
    return normalize_number(a / b)


def _modulo(left: Any, right: Any) -> Any:
    a, b = to_number(left), to_number(right)
    if b == 0:
        return math.nan
    if isinstance(b, float) and math.isinf(b) and not (isinstance(a, float) and math.isinf(a)):
        return a
    try:
        return normalize_number(math.fmod(a, b))
    except ValueError:
        return math.nan


def _power(left: Any, right: Any) -> Any:
    try:
        return normalize_number(math.pow(float(to_number(left)), float(to_number(right))))
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


def _compare(op: str, left: Any, right: Any) -> bool:
    a, b = _to_primitive(left), _to_primitive(right)
    if not (isinstance(a, str) and isinstance(b, str)):
        a, b = to_number(a), to_number(b)
        if (isinstance(a, float) and math.isnan(a)) or (isinstance(b, float) and math.isnan(b)):
            return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


class Interpreter:
    """Tree-walking interpreter for one evaluation (one step budget)."""

    def __init__(self, context: Mapping[str, Any], step_limit: int = DEFAULT_STEP_LIMIT):
        self.context = context
        self.step_limit = step_limit
        self.steps = 0

    def run(self, node: Any) -> Any:
        return self.eval(node, None)

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.step_limit:
            raise EvaluationBudgetExceeded(f"Expression exceeded {self.step_limit} evaluation steps")

    def eval(self, node: Any, scope: Optional[Scope]) -> Any:
        self._tick()
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Name):
            return self._lookup(node.id, scope)
        if isinstance(node, Member):
            obj = self.eval(node.obj, scope)
            if node.optional and is_nullish(obj):
                return UNDEFINED
            return self.get_property(obj, node.prop)
        if isinstance(node, Index):
            obj = self.eval(node.obj, scope)
            if node.optional and is_nullish(obj):
                return UNDEFINED
            return self._get_index(obj, self.eval(node.key, scope))
        if isinstance(node, Call):
            callee = self.eval(node.callee, scope)
            args = [self.eval(arg, scope) for arg in node.args]
            return self.invoke(callee, args, _describe(node.callee))
        if isinstance(node, Logical):
            return self._eval_logical(node, scope)
        if isinstance(node, Binary):
            return self._eval_binary(node.op, self.eval(node.left, scope), self.eval(node.right, scope))
        if isinstance(node, Unary):
            return self._eval_unary(node, scope)
        if isinstance(node, Conditional):
            if truthy(self.eval(node.test, scope)):
                return self.eval(node.consequent, scope)
            return self.eval(node.alternate, scope)
        if isinstance(node, ArrayLiteral):
            return check_array_length([self.eval(item, scope) for item in node.items])
        if isinstance(node, ObjectLiteral):
            return {key: self.eval(value, scope) for key, value in node.entries}
        if isinstance(node, Arrow):
            return Closure(self, node, scope)
        if isinstance(node, Undefined):
            return UNDEFINED
        raise ExpressionEvaluationError(f"Unsupported expression node {type(node).__name__}")

    # names and properties

    def _lookup(self, name: str, scope: Optional[Scope]) -> Any:
        if scope is not None:
            found, value = scope.lookup(name)
            if found:
                return value
        if name in self.context:
            return self.context[name]
        raise ExpressionEvaluationError(f"{name} is not defined")

    def get_property(self, obj: Any, key: str) -> Any:
        if is_nullish(obj):
            raise ExpressionEvaluationError(
                f"Cannot read properties of {to_js_string(obj)} (reading '{key}')"
            )
        if isinstance(obj, dict):
            return obj.get(key, UNDEFINED)
        if isinstance(obj, list):
            if key == "length":
                return len(obj)
            if key.isdecimal():
                return self._get_index(obj, int(key))
            if key in ARRAY_METHODS:
                return BoundMethod(self, obj, key)
            return UNDEFINED
        if isinstance(obj, str):
            if key == "length":
                return len(obj)
            if key.isdecimal():
                return self._get_index(obj, int(key))
            if key in STRING_METHODS:
                return BoundMethod(self, obj, key)
            return UNDEFINED
        if isinstance(obj, bool):
            return BoundMethod(self, obj, key) if key == "toString" else UNDEFINED
        if is_number(obj):
            return BoundMethod(self, obj, key) if key in NUMBER_METHODS else UNDEFINED
        if isinstance(obj, (Namespace, NativeFunction)):
            return obj.get_member(key)
        return UNDEFINED

    def _get_index(self, obj: Any, key: Any) -> Any:
        if isinstance(obj, (list, str)) and is_number(key):
            if isinstance(key, float) and not key.is_integer():
                return UNDEFINED
            idx = int(key)
            if 0 <= idx < len(obj):
                return obj[idx]
            return UNDEFINED
        return self.get_property(obj, to_js_string(key))

    # calls

    def invoke(self, callee: Any, args: List[Any], name: str = "expression") -> Any:
        if isinstance(callee, (Closure, BoundMethod)):
            return callee.call(args)
        if isinstance(callee, NativeFunction):
            try:
                return callee.call(args)
            except _HOST_ERRORS as e:
                raise ExpressionEvaluationError(f"{callee.name}() failed: {e}") from e
        raise ExpressionEvaluationError(f"{name} is not a function")

    def call_method(self, target: Any, name: str, args: List[Any]) -> Any:
        try:
            if isinstance(target, list):
                return self._array_method(target, name, args)
            if isinstance(target, str):
                return self._string_method(target, name, args)
            return self._number_method(target, name, args)
        except _HOST_ERRORS as e:
            raise ExpressionEvaluationError(f"{name}() failed: {e}") from e

    def _array_method(self, arr: List[Any], name: str, args: List[Any]) -> Any:
        fn = args[0] if args else UNDEFINED
        if name == "map":
            return check_array_length([self.invoke(fn, [item, i, arr], "callback") for i, item in enumerate(arr)])
        if name == "filter":
            return check_array_length(
                [item for i, item in enumerate(arr) if truthy(self.invoke(fn, [item, i, arr], "callback"))]
            )
        if name == "reduce":
            items = list(enumerate(arr))
            if len(args) >= 2:
                acc = args[1]
            elif not items:
                raise ExpressionEvaluationError("Reduce of empty array with no initial value")
            else:
                acc = items[0][1]
                items = items[1:]
            for i, item in items:
                acc = self.invoke(fn, [acc, item, i, arr], "callback")
            return acc
        if name == "some":
            return any(truthy(self.invoke(fn, [item, i, arr], "callback")) for i, item in enumerate(arr))
        if name == "every":
            return all(truthy(self.invoke(fn, [item, i, arr], "callback")) for i, item in enumerate(arr))
        if name == "find":
            for i, item in enumerate(arr):
                if truthy(self.invoke(fn, [item, i, arr], "callback")):
                    return item
            return UNDEFINED
        if name == "findIndex":
            for i, item in enumerate(arr):
                if truthy(self.invoke(fn, [item, i, arr], "callback")):
                    return i
            return -1
        if name == "includes":
            return any(same_value_zero(item, fn) for item in arr)
        if name == "indexOf":
            for i, item in enumerate(arr):
                if strict_equals(item, fn):
                    return i
            return -1
        if name == "join":
            sep = "," if fn is UNDEFINED else to_js_string(fn)
            return check_string_length(sep.join("" if is_nullish(item) else to_js_string(item) for item in arr))
        if name == "slice":
            start = to_integer(fn, 0)
            end = to_integer(args[1], len(arr)) if len(args) > 1 else len(arr)
            return check_array_length(arr[start:end])
        if name == "concat":
            size = len(arr) + sum(len(extra) if isinstance(extra, list) else 1 for extra in args)
            if size > MAX_ARRAY_LENGTH:
                raise EvaluationBudgetExceeded(f"Array result exceeds {MAX_ARRAY_LENGTH} elements")
            out = list(arr)
            for extra in args:
                if isinstance(extra, list):
                    out.extend(extra)
                else:
                    out.append(extra)
            return out
        if name == "reverse":
            return list(reversed(arr))
        if name == "sort":
            if fn is UNDEFINED:
                defined = [item for item in arr if item is not UNDEFINED]
                missing = [item for item in arr if item is UNDEFINED]
                return sorted(defined, key=to_js_string) + missing

            def compare(a: Any, b: Any) -> int:
                result = to_number(self.invoke(fn, [a, b], "comparator"))
                if isinstance(result, float) and math.isnan(result):
                    return 0
                return (result > 0) - (result < 0)

            return sorted(arr, key=functools.cmp_to_key(compare))
        if name == "toString":
            return to_js_string(arr)
        raise ExpressionEvaluationError(f"Array method {name} is not supported")

    def _string_method(self, text: str, name: str, args: List[Any]) -> Any:
        first = args[0] if args else UNDEFINED
        if name == "toUpperCase":
            return text.upper()
        if name == "toLowerCase":
            return text.lower()
        if name == "trim":
            return text.strip()
        if name == "trimStart":
            return text.lstrip()
        if name == "trimEnd":
            return text.rstrip()
        if name == "includes":
            return to_js_string(first) in text
        if name == "startsWith":
            return text.startswith(to_js_string(first))
        if name == "endsWith":
            return text.endswith(to_js_string(first))
        if name == "indexOf":
            return text.find(to_js_string(first))
        if name == "charAt":
            idx = to_integer(first, 0)
            return text[idx] if 0 <= idx < len(text) else ""
        if name == "split":
            if first is UNDEFINED:
                parts = [text]
            elif to_js_string(first) == "":
                parts = list(text)
            else:
                parts = text.split(to_js_string(first))
            if len(args) > 1 and args[1] is not UNDEFINED:
                parts = parts[: max(to_integer(args[1], len(parts)), 0)]
            return check_array_length(parts)
        if name == "slice":
            start = to_integer(first, 0)
            end = to_integer(args[1], len(text)) if len(args) > 1 else len(text)
            return text[start:end]
        if name == "substring":
            size = len(text)
            start = min(max(to_integer(first, 0), 0), size)
            end = min(max(to_integer(args[1], size), 0), size) if len(args) > 1 else size
            if start > end:
                start, end = end, start
            return text[start:end]
        if name == "replace":
            pattern = to_js_string(first)
            replacement = args[1] if len(args) > 1 else UNDEFINED
            if pattern not in text:
                return text
            if isinstance(replacement, (Closure, BoundMethod, NativeFunction)):
                replacement = self.invoke(replacement, [pattern], "replacer")
            return check_string_length(text.replace(pattern, to_js_string(replacement), 1))
        if name in ("padStart", "padEnd"):
            target = to_integer(first, 0)
            fill = to_js_string(args[1]) if len(args) > 1 and args[1] is not UNDEFINED else " "
            if target <= len(text) or fill == "":
                return text
            if target > MAX_STRING_LENGTH:
                raise ExpressionEvaluationError(f"String result exceeds {MAX_STRING_LENGTH} characters")
            pad = (fill * (target // len(fill) + 1))[: target - len(text)]
            return pad + text if name == "padStart" else text + pad
        if name == "repeat":
            count = to_integer(first, 0)
            if count < 0:
                raise ExpressionEvaluationError("Invalid count value")
            if len(text) * count > MAX_STRING_LENGTH:
                raise ExpressionEvaluationError(f"String result exceeds {MAX_STRING_LENGTH} characters")
            return text * count
        if name == "toString":
            return text
        raise ExpressionEvaluationError(f"String method {name} is not supported")

    def _number_method(self, value: Any, name: str, args: List[Any]) -> Any:
        first = args[0] if args else UNDEFINED
        if isinstance(value, bool):
            return to_js_string(value)
        if name == "toFixed":
            digits = to_integer(first, 0)
            if digits < 0 or digits > 100:
                raise ExpressionEvaluationError("toFixed() digits argument must be between 0 and 100")
            if isinstance(value, float) and not math.isfinite(value):
                return format_number(value)
            return f"{value:.{digits}f}"
        if name == "toString":
            radix = to_integer(first, 10)
            if radix == 10 or not isinstance(value, int):
                return format_number(value)
            if radix < 2 or radix > 36:
                raise ExpressionEvaluationError("toString() radix must be between 2 and 36")
            digits = "0123456789abcdefghijklmnopqrstuvwxyz"
            num, out = abs(value), ""
            while True:
                num, rem = divmod(num, radix)
                out = digits[rem] + out
                if num == 0:
                    break
            return ("-" if value < 0 else "") + out
        raise ExpressionEvaluationError(f"Number method {name} is not supported")

    # operators

    def _eval_logical(self, node: Logical, scope: Optional[Scope]) -> Any:
        left = self.eval(node.left, scope)
        if node.op == "&&":
            return self.eval(node.right, scope) if truthy(left) else left
        if node.op == "||":
            return left if truthy(left) else self.eval(node.right, scope)
        return self.eval(node.right, scope) if is_nullish(left) else left

    def _eval_unary(self, node: Unary, scope: Optional[Scope]) -> Any:
        if node.op == "typeof":
            if isinstance(node.operand, Name):
                found = scope.lookup(node.operand.id)[0] if scope is not None else False
                if not found and node.operand.id not in self.context:
                    return "undefined"
            return type_of(self.eval(node.operand, scope))
        value = self.eval(node.operand, scope)
        if node.op == "!":
            return not truthy(value)
        if node.op == "-":
            return normalize_number(-to_number(value))
        return to_number(value)

    def _eval_binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "+":
            a, b = _to_primitive(left), _to_primitive(right)
            if isinstance(a, str) or isinstance(b, str):
                return check_string_length(to_js_string(a) + to_js_string(b))
            return normalize_number(to_number(a) + to_number(b))
        if op == "-":
            return normalize_number(to_number(left) - to_number(right))
        if op == "*":
            return normalize_number(to_number(left) * to_number(right))
        if op == "/":
            return _divide(left, right)
        if op == "%":
            return _modulo(left, right)
        if op == "**":
            return _power(left, right)
        if op in ("<", "<=", ">", ">="):
            return _compare(op, left, right)
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op == "in":
            if isinstance(right, dict):
                return to_js_string(left) in right
            if isinstance(right, list):
                key = to_js_string(left)
                return key == "length" or (key.isdecimal() and int(key) < len(right))
            raise ExpressionEvaluationError(
                f"Cannot use 'in' operator to search for '{to_js_string(left)}' in {to_js_string(right)}"
            )
        raise ExpressionEvaluationError(f"Unsupported operator {op}")


class ExpressionEvaluator:
    """Evaluates expressions, conditions and templates with fixed budgets."""

    def __init__(self, step_limit: Optional[int] = None, max_length: Optional[int] = None):
        self.step_limit = step_limit or DEFAULT_STEP_LIMIT
        self.max_length = max_length or MAX_EXPRESSION_LENGTH

    def parse(self, expression: str) -> Any:
        return parse_expression(expression, max_length=self.max_length)

    def evaluate(self, expression: str, context: Mapping[str, Any]) -> Any:
        """Evaluate expression text and return the raw value. Raises ExpressionError."""
        node = self.parse(expression)
        interpreter = Interpreter(context, self.step_limit)
        try:
            return interpreter.run(node)
        except RecursionError:
            raise EvaluationBudgetExceeded("Expression recursion too deep", expression[:64]) from None
        except ExpressionError as e:
            if not e.expression:
                e.expression = expression
            raise
        except _HOST_ERRORS as e:
            raise ExpressionEvaluationError(str(e), expression) from e

    def evaluate_condition(
        self,
        condition: Any,
        context: Mapping[str, Any],
        on_error: Optional[ErrorCallback] = None,
    ) -> bool:
        """Truth value of a rule condition.

        Absent (None or a blank string) means always-true; booleans are returned
        as-is; strings are evaluated. Any failure yields False.
        """
        if condition is None or (isinstance(condition, str) and not condition.strip()):
            return True
        if isinstance(condition, bool):
            return condition
        if not isinstance(condition, str):
            return truthy(condition)
        try:
            return truthy(self.evaluate(condition, context))
        except ExpressionError as e:
            if on_error is not None:
                on_error(condition, e)
            return False

    def resolve_template(
        self,
        template: Any,
        context: Mapping[str, Any],
        on_error: Optional[ErrorCallback] = None,
    ) -> Any:
        """Resolve a `then` value.

        Only a string that is entirely `{{ expr }}` is evaluated; anything
        else (including text with an embedded `{{x}}`) is returned verbatim.
        On failure the original template string is returned.
        """
        if not isinstance(template, str):
            return copy.deepcopy(template)
        match = TEMPLATE_PATTERN.match(template.strip())
        if match is None:
            return template
        inner = match.group(1).strip()
        builtin = TEMPLATE_BUILTINS.get(re.sub(r"\s+", "", inner))
        if builtin is not None:
            return builtin()
        try:
            return to_plain(self.evaluate(inner, context))
        except ExpressionError as e:
            if on_error is not None:
                on_error(template, e)
            return template

    def check_syntax(self, expression: str) -> Optional[str]:
        """Return a parse error message, or None when the expression parses."""
        try:
            self.parse(expression)
        except ExpressionError as e:
            return e.message
        return None


_default_evaluator = ExpressionEvaluator()


def evaluate_expression(expression: str, context: Mapping[str, Any]) -> Any:
    return _default_evaluator.evaluate(expression, context)


def evaluate_condition(condition: Any, context: Mapping[str, Any], on_error: Optional[ErrorCallback] = None) -> bool:
    return _default_evaluator.evaluate_condition(condition, context, on_error)


def resolve_template(template: Any, context: Mapping[str, Any], on_error: Optional[ErrorCallback] = None) -> Any:
    return _default_evaluator.resolve_template(template, context, on_error)


def template_expression(value: Any) -> Optional[str]:
    """Inner expression of a whole-string template, or None."""
    if not isinstance(value, str):
        return None
    match = TEMPLATE_PATTERN.match(value.strip())
    return match.group(1).strip() if match else None
