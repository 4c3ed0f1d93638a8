"""
Fixpoint Driver

Runs a rule set against a JSON state until nothing changes or the iteration
cap is reached.

Rules config format:

{
  "max_iterations": 10,
  "rules": [
    {"name": "double", "priority": 1, "if": "a < 10", "then": {"a": "{{ a * 2 }}"}},
    {"name": "flag", "if": "a >= 10", "then": {"flags.big": true}, "else": {"flags.big": false}}
  ]
}

- Rules run in ascending priority (missing priority = 999), ties in list order.
- One sweep applies every rule once. The sweep counts as a change when the
  canonical JSON of the state differs between sweep start and sweep end.
- The run stops after the first unchanged sweep (converged), at
  max_iterations (reported as a warning), or when the optional wall-clock
  budget runs out (reported as an error).

apply() never raises for expression problems; they are recorded in the
audit trail. It raises RulesConfigError when `rules` is not a list of
objects and InvalidStateError when the state is not an object.
"""

from __future__ import annotations

import copy
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .applicator import RuleApplicator, rule_name
from .audit import AuditEntry, AuditRecorder, ConflictEntry
from .errors import InvalidStateError, RulesConfigError
from .expressions import DEFAULT_STEP_LIMIT, ExpressionEvaluator
from .expression_parser import MAX_EXPRESSION_LENGTH
from .validation import validate_ruleset
from .values import canonical_json, is_number

logger = logging.getLogger(__name__)

ENGINE_VERSION = "1.0.0"

STOPPED_CONVERGED = "converged"
STOPPED_MAX_ITERATIONS = "max_iterations"
STOPPED_TIME_BUDGET = "time_budget_exceeded"


@dataclass(frozen=True)
class EngineResult:
    input: Dict[str, Any]
    output: Dict[str, Any]
    iterations: int
    audit: Tuple[AuditEntry, ...]
    conflicts: Tuple[ConflictEntry, ...]
    rules_applied: Tuple[str, ...]
    stopped_reason: str
    rules_hash: str
    engine_version: str = ENGINE_VERSION

    @property
    def converged(self) -> bool:
        return self.stopped_reason == STOPPED_CONVERGED

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape (camelCase keys) for JSON consumers."""
        return {
            "input": copy.deepcopy(self.input),
            "output": copy.deepcopy(self.output),
            "iterations": self.iterations,
            "audit": [e.to_dict() for e in self.audit],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "rulesApplied": list(self.rules_applied),
            "stoppedReason": self.stopped_reason,
            "rulesHash": self.rules_hash,
            "engine_version": self.engine_version,
        }


def rules_hash(rules_config: Any) -> str:
    """SHA256 fingerprint of the canonical JSON of a rules config."""
    return "sha256:" + hashlib.sha256(canonical_json(rules_config).encode("utf-8")).hexdigest()


class RuleEngine:
    """Priority-ordered fixpoint rule engine.

    Instances hold configuration only; every apply() call gets its own
    working state, audit trail and conflict log.
    """

    DEFAULT_MAX_ITERATIONS = 10
    DEFAULT_PRIORITY = 999
    EXPRESSION_STEP_LIMIT = DEFAULT_STEP_LIMIT
    EXPRESSION_MAX_LENGTH = MAX_EXPRESSION_LENGTH

    def __init__(
        self,
        max_iterations: Optional[int] = None,
        step_limit: Optional[int] = None,
        max_expression_length: Optional[int] = None,
        time_budget_seconds: Optional[float] = None,
    ):
        self.max_iterations = max_iterations or self.DEFAULT_MAX_ITERATIONS
        self.time_budget_seconds = time_budget_seconds
        self.evaluator = ExpressionEvaluator(
            step_limit=step_limit or self.EXPRESSION_STEP_LIMIT,
            max_length=max_expression_length or self.EXPRESSION_MAX_LENGTH,
        )

    def _priority(self, rule: Mapping[str, Any]) -> float:
        priority = rule.get("priority")
        if is_number(priority):
            return priority
        return self.DEFAULT_PRIORITY

    def _max_iterations(self, rules_config: Mapping[str, Any], recorder: AuditRecorder) -> int:
        value = rules_config.get("max_iterations")
        if value is None:
            return self.max_iterations
        if is_number(value) and value >= 1 and float(value).is_integer():
            return int(value)
        recorder.warning(f"Ignoring invalid max_iterations {value!r}; using {self.max_iterations}")
        return self.max_iterations

    def _sorted_rules(self, rules: List[Any]) -> List[Tuple[str, Mapping[str, Any]]]:
        named = []
        for index, rule in enumerate(rules):
            if not isinstance(rule, Mapping):
                raise RulesConfigError(f"Rule {index}: must be an object, got {type(rule).__name__}")
            named.append((rule_name(rule, index), rule))
        # sorted() is stable: equal priorities keep list order
        return sorted(named, key=lambda item: self._priority(item[1]))

    def apply(self, input_state: Optional[Mapping[str, Any]], rules_config: Mapping[str, Any]) -> EngineResult:
        if input_state is None:
            input_state = {}
        if not isinstance(input_state, Mapping):
            raise InvalidStateError(f"State must be a JSON object, got {type(input_state).__name__}")
        if not isinstance(rules_config, Mapping):
            raise RulesConfigError("Rules configuration must be an object")
        rules = rules_config.get("rules")
        if not isinstance(rules, list):
            raise RulesConfigError('Rules configuration must have a "rules" array')

        recorder = AuditRecorder(logger)
        applicator = RuleApplicator(self.evaluator, recorder)

        original = copy.deepcopy(dict(input_state))
        state: Dict[str, Any] = copy.deepcopy(dict(input_state))
        max_iterations = self._max_iterations(rules_config, recorder)
        sorted_rules = self._sorted_rules(rules)
        deadline = None
        if self.time_budget_seconds:
            deadline = time.monotonic() + self.time_budget_seconds

        recorder.info("Starting rule application")
        recorder.info(f"Rules: {len(sorted_rules)}")
        recorder.info(
            "Execution order: "
            + " → ".join(
                f"{name}({rule['priority'] if is_number(rule.get('priority')) else 'default'})"
                for name, rule in sorted_rules
            )
        )

        iteration = 0
        changed = True
        stopped_reason = STOPPED_CONVERGED
        while changed and iteration < max_iterations:
            changed = False
            iteration += 1
            recorder.info(f"--- Iteration {iteration} ---")

            sweep_start = canonical_json(state)
            iteration_writes: Dict[str, str] = {}
            conflicts_before = recorder.conflict_events

            for name, rule in sorted_rules:
                if deadline is not None and time.monotonic() > deadline:
                    stopped_reason = STOPPED_TIME_BUDGET
                    break
                application = applicator.apply_rule(
                    rule, state, iteration_writes, name=name, iteration=iteration
                )
                if application.changed_paths:
                    paths = ", ".join(application.changed_paths)
                    recorder.info(f"Changed by {name} ({application.branch}): {paths}")

            if stopped_reason == STOPPED_TIME_BUDGET:
                recorder.error(
                    f"Stopped: time budget of {self.time_budget_seconds}s exceeded in iteration {iteration}"
                )
                break

            sweep_conflicts = recorder.conflict_events - conflicts_before
            if sweep_conflicts:
                recorder.warning(f"Conflicts resolved: {sweep_conflicts}")

            changed = canonical_json(state) != sweep_start

        if stopped_reason != STOPPED_TIME_BUDGET:
            if changed:
                stopped_reason = STOPPED_MAX_ITERATIONS
                recorder.warning(f"Stopped at max iterations: {max_iterations}")
            else:
                recorder.info(f"Converged after {iteration} iterations")

        recorder.info(f"Completed in {iteration} iterations")

        return EngineResult(
            input=original,
            output=state,
            iterations=iteration,
            audit=tuple(recorder.entries),
            conflicts=tuple(recorder.conflicts),
            rules_applied=tuple(recorder.rules_applied()),
            stopped_reason=stopped_reason,
            rules_hash=rules_hash(rules_config),
        )

    def validate(self, rules_config: Any) -> List[str]:
        return validate_ruleset(rules_config, evaluator=self.evaluator)


def apply_rules(input_state: Optional[Mapping[str, Any]], rules_config: Mapping[str, Any], **engine_options: Any) -> EngineResult:
    """Convenience wrapper: RuleEngine(**engine_options).apply(...)."""
    return RuleEngine(**engine_options).apply(input_state, rules_config)
