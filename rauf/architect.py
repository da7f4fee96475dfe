"""Interactive question-and-answer rounds for architect mode."""

from __future__ import annotations

import queue
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TextIO

from rauf.fence import FenceState
from rauf.hypothesis import extract_typed_questions, format_typed_question_for_display
from rauf.state import RaufState

BASE_ARCHITECT_QUESTIONS = 3
BONUS_QUESTIONS_PER_FAILURE = 1

_ANSWER_TIMEOUT_SECONDS = 5 * 60
_QUESTION_PREFIX = "RAUF_QUESTION:"


@dataclass
class ArchitectResult:
    """Outcome of the question rounds: final output, whether any was asked, final prompt."""

    output: str
    asked: bool
    prompt: str


def max_architect_questions_for_state(state: RaufState) -> int:
    """Question limit: the base, plus a bonus for each prior failure."""
    limit = BASE_ARCHITECT_QUESTIONS
    if state.prior_guardrail_status == "fail":
        limit += BONUS_QUESTIONS_PER_FAILURE
    if state.last_verification_status == "fail":
        limit += BONUS_QUESTIONS_PER_FAILURE
    return limit


def _read_answer(reader: TextIO) -> str:
    answers: queue.Queue[str] = queue.Queue(maxsize=1)

    def read() -> None:
        try:
            line = reader.readline()
        except (OSError, ValueError):
            line = ""
        answers.put(line.strip())

    threading.Thread(target=read, daemon=True).start()
    try:
        return answers.get(timeout=_ANSWER_TIMEOUT_SECONDS)
    except queue.Empty:
        return "(no answer provided - timeout)"


def run_architect_questions(
    prompt: str,
    output: str,
    state: RaufState,
    run_harness: Callable[[str], str],
    reader: TextIO | None = None,
    writer: TextIO | None = None,
) -> ArchitectResult:
    """Ask the user the questions found in ``output`` and rerun the harness with the answers.

    ``run_harness`` takes the updated prompt and returns the new output. If it raises,
    the original output is returned with ``asked`` false.
    """
    reader = reader if reader is not None else sys.stdin
    writer = writer if writer is not None else sys.stdout
    total_asked = 0
    updated = output
    limit = max_architect_questions_for_state(state)

    while True:
        questions = extract_typed_questions(updated)
        if not questions or total_asked >= limit:
            break
        answers = []
        for question in questions:
            if total_asked >= limit:
                break
            total_asked += 1
            shown = format_typed_question_for_display(question)
            writer.write(f"Architect question: {shown}\n> ")
            writer.flush()
            text = _read_answer(reader) or "(no answer provided)"
            answers.append(f"Q: {shown}\nA: {text}")
        if not answers:
            break
        prompt = prompt + "\n\n# Architect Answers\n\n" + "\n\n".join(answers)
        try:
            updated = run_harness(prompt)
        except Exception as exc:  # any harness failure ends the rounds
            print("Architect follow-up failed:", exc, file=sys.stderr)
            return ArchitectResult(output=output, asked=False, prompt=prompt)

    return ArchitectResult(output=updated, asked=total_asked > 0, prompt=prompt)


def extract_questions(output: str) -> list[str]:
    """Return the text of every ``RAUF_QUESTION:`` line outside code fences."""
    questions = []
    fence = FenceState()
    for line in output.split("\n"):
        trimmed = line.strip()
        if fence.process_line(trimmed):
            continue
        if trimmed.startswith(_QUESTION_PREFIX):
            question = trimmed.removeprefix(_QUESTION_PREFIX).strip()
            if question:
                questions.append(question)
    return questions