"""JSON-lines log records for run iterations."""

from __future__ import annotations

import contextlib
import json
from dataclasses import dataclass, field, fields
from typing import Any, TextIO

_JSON_KEYS = {"from_model": "from", "to_model": "to"}
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


@dataclass
class LogEntry:
    """One log record; empty fields other than ``type`` are omitted from JSON."""

    type: str
    mode: str = ""
    iteration: int = 0
    verify_cmd: str = ""
    verify_status: str = ""
    verify_output: str = ""
    plan_hash: str = ""
    prompt_hash: str = ""
    branch: str = ""
    head_before: str = ""
    head_after: str = ""
    guardrail: str = ""
    exit_reason: str = ""
    completion_signal: str = ""
    completion_specs: list[str] = field(default_factory=list)
    completion_artifacts: list[str] = field(default_factory=list)
    model: str = ""
    escalated: bool = False
    escalation_reason: str = ""
    from_model: str = ""
    to_model: str = ""
    cooldown: int = 0
    escalation_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON object for this entry, in field order, without empty values."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name != "type" and not value:
                continue
            result[_JSON_KEYS.get(f.name, f.name)] = list(value) if isinstance(value, list) else value
        return result


def _encode(entry: LogEntry) -> str:
    text = json.dumps(entry.to_dict(), ensure_ascii=False, separators=(",", ":"))
    # These characters only ever appear inside string values, so escaping them is safe.
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text


def write_log_entry(file: TextIO | None, entry: LogEntry) -> None:
    """Append ``entry`` as one JSON line to ``file``; do nothing without a file."""
    if file is None:
        return
    with contextlib.suppress(OSError):
        file.write(_encode(entry) + "\n")