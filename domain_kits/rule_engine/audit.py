"""
Audit/Conflict Recorder

Append-only logs for one engine run: rule decisions (applied/skipped),
evaluation failures, conflicts, and run milestones. Each entry is also
mirrored to the engine logger at the same level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

APPLIED_PREFIX = "Applied: "


@dataclass(frozen=True)
class AuditEntry:
    timestamp: str
    level: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "level": self.level, "message": self.message}


@dataclass(frozen=True)
class ConflictEntry:
    field: str
    previous_rule: str
    current_rule: str
    iteration: int
    resolution: str = "priority_override"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "previousRule": self.previous_rule,
            "currentRule": self.current_rule,
            "resolution": self.resolution,
            "iteration": self.iteration,
        }


class AuditRecorder:
    """Collects audit and conflict entries for a single apply() call."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.entries: List[AuditEntry] = []
        self.conflicts: List[ConflictEntry] = []
        self.conflict_events = 0
        self._conflict_index: Dict[Tuple[str, str, str], ConflictEntry] = {}

    def log(self, message: str, level: str = "info") -> AuditEntry:
        if level not in LEVELS:
            level = "info"
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            level=level,
            message=message,
        )
        self.entries.append(entry)
        self.logger.log(LEVELS[level], message)
        return entry

    def info(self, message: str) -> AuditEntry:
        return self.log(message, "info")

    def warning(self, message: str) -> AuditEntry:
        return self.log(message, "warning")

    def error(self, message: str) -> AuditEntry:
        return self.log(message, "error")

    def applied(self, rule_name: str) -> AuditEntry:
        return self.info(f"{APPLIED_PREFIX}{rule_name}")

    def record_conflict(self, field: str, previous_rule: str, current_rule: str, iteration: int) -> ConflictEntry:
        """Log a write conflict.

        The conflict log keeps one entry per (field, previous rule, current rule),
        stamped with the first iteration it happened in; later sweeps that repeat
        the same conflict only add an audit warning.
        """
        self.conflict_events += 1
        key = (field, previous_rule, current_rule)
        conflict = self._conflict_index.get(key)
        if conflict is None:
            conflict = ConflictEntry(
                field=field,
                previous_rule=previous_rule,
                current_rule=current_rule,
                iteration=iteration,
            )
            self._conflict_index[key] = conflict
            self.conflicts.append(conflict)
        self.warning(f"Conflict: {previous_rule} vs {current_rule} on {field} → {current_rule} wins")
        return conflict

    def rules_applied(self) -> List[str]:
        """Names from 'Applied:' entries, in emission order (duplicates kept)."""
        return [
            e.message[len(APPLIED_PREFIX):] for e in self.entries if e.message.startswith(APPLIED_PREFIX)
        ]
