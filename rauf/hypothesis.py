"""Extraction of hypotheses and typed questions from model output."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from rauf.fence import FenceState

_QUESTION_PREFIX = "RAUF_QUESTION:"
_QUESTION_TAGS = ("CLARIFY:", "DECISION:", "ASSUMPTION:")
_SCOPES = {"STICKY:": "sticky", "GLOBAL:": "global"}


@dataclass
class Hypothesis:
    """A structured hypothesis entry recorded from model output."""

    timestamp: datetime
    iteration: int
    hypothesis: str
    different_action: str
    verify_command: str = ""


@dataclass
class TypedQuestion:
    """A question with an optional type tag (CLARIFY, DECISION, ASSUMPTION)."""

    type: str = ""
    question: str = ""
    sticky_scope: str = ""


def _lines_outside_fence(output: str):
    fence = FenceState()
    for line in output.split("\n"):
        trimmed = line.strip()
        if not fence.process_line(trimmed):
            yield trimmed


def extract_hypothesis(output: str) -> tuple[str, str]:
    """Return ``(hypothesis, different_action)`` found outside code fences."""
    hypothesis = ""
    different_action = ""
    for trimmed in _lines_outside_fence(output):
        if trimmed.startswith("HYPOTHESIS:"):
            hypothesis = trimmed.removeprefix("HYPOTHESIS:").strip()
        if trimmed.startswith("DIFFERENT_THIS_TIME:"):
            different_action = trimmed.removeprefix("DIFFERENT_THIS_TIME:").strip()
        if trimmed.startswith("DIFFERENT:") and not different_action:
            different_action = trimmed.removeprefix("DIFFERENT:").strip()
    return hypothesis, different_action


def has_required_hypothesis(output: str) -> bool:
    """True if the output states both a hypothesis and what will be done differently."""
    hypothesis, different_action = extract_hypothesis(output)
    return bool(hypothesis) and bool(different_action)


def _parse_question(rest: str) -> TypedQuestion:
    for tag in _QUESTION_TAGS:
        if not rest.startswith(tag):
            continue
        q = TypedQuestion(type=tag[:-1], question=rest.removeprefix(tag).strip())
        if q.type == "ASSUMPTION":
            upper = q.question.upper()
            for marker, scope in _SCOPES.items():
                if upper.startswith(marker):
                    q.sticky_scope = scope
                    q.question = q.question.partition(":")[2].strip()
                    break
        return q
    return TypedQuestion(question=rest)


def extract_typed_questions(output: str) -> list[TypedQuestion]:
    """Parse ``RAUF_QUESTION:`` lines, with optional type tags, outside code fences."""
    questions = []
    for trimmed in _lines_outside_fence(output):
        if not trimmed.startswith(_QUESTION_PREFIX):
            continue
        rest = trimmed.removeprefix(_QUESTION_PREFIX).strip()
        if not rest:
            continue
        q = _parse_question(rest)
        if q.question:
            questions.append(q)
    return questions


def format_typed_question_for_display(q: TypedQuestion) -> str:
    """Render a question for the console, prefixed by its type and scope if any."""
    if not q.type:
        return q.question
    prefix = "[" + q.type
    if q.sticky_scope:
        prefix += ":" + q.sticky_scope.upper()
    return prefix + "] " + q.question