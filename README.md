# rauf

Building blocks for running a coding agent in a loop under supervision.
The package reads what the agent writes, checks what it changed in a git
working tree, and builds the feedback for the agent's next iteration.

## Modules

- `rauf.fence`: `FenceState` tracks Markdown code fences (backticks or
  tildes, at least three) line by line; `scan_lines_outside_fence` calls a
  predicate on every trimmed line outside a fence. The parsers below use it.
- `rauf.hypothesis`: `extract_hypothesis` returns the `HYPOTHESIS:` and
  `DIFFERENT_THIS_TIME:` (or `DIFFERENT:`) texts; `has_required_hypothesis`
  tells whether both are present. `extract_typed_questions` reads
  `RAUF_QUESTION:` lines, with optional `CLARIFY:`, `DECISION:` or
  `ASSUMPTION:` tags (and `STICKY:`/`GLOBAL:` scopes on assumptions), into
  `TypedQuestion` objects; `format_typed_question_for_display` renders them.
  `Hypothesis` is a dataclass for recording a hypothesis entry.
- `rauf.state`: the dataclasses `RuntimeConfig`, `EscalationConfig`,
  `RecoveryConfig` and `RaufState`, plus `default_escalation_config()`
  (disabled, every threshold at 2).
- `rauf.gitcmd`: `Git` runs git in a working directory. `output` strips the
  result, `output_raw` returns it unchanged, and a failure raises `GitError`.
  An `executor` callable can stand in for the real binary.
- `rauf.guardrails`: `enforce_guardrails` checks the commit count, the number
  of changed files and forbidden paths. `enforce_verification_guardrails`,
  `enforce_missing_verify_guardrail` and `enforce_missing_verify_no_git`
  cover the verification rules. Each returns `(ok, reason)`, and git failures
  count as rejections. `list_changed_files` parses `git diff --name-only` or
  `git status --porcelain`, including quoted and renamed paths
  (`parse_status_path`, `unquote_git_path`), and raises `GitError` if git
  fails.
- `rauf.backpressure`: `build_backpressure_pack` turns guardrail failures,
  failed verification, prior exit reasons, plan drift, harness retries and
  recovery mode into a Markdown "Backpressure Pack". Its helpers are
  `format_guardrail_backpressure`, `summarize_verify_output`,
  `has_backpressure_response` and `generate_plan_diff`.
- `rauf.escalation`: `update_backpressure_state` returns a new state with the
  failure streaks and the recovery mode updated. `update_model_escalation_state`
  moves to the strong model and back and returns an `EscalationEvent`.
  `apply_model_choice` and `contains_model_flag` handle the model flag in the
  harness argument string.
- `rauf.architect`: `run_architect_questions` asks the user the agent's
  questions, up to `max_architect_questions_for_state`. It appends the
  answers to the prompt and calls your `run_harness(prompt)` callable for the
  next output. The result is an `ArchitectResult`. `extract_questions`
  returns the plain question texts.
- `rauf.logentry`: `LogEntry` and `write_log_entry`, which appends one JSON
  line to an open file.
- `rauf.hashing`: `file_hash_from_string` gives a hex SHA-256 digest.

## Installation

```
pip install .
```

To also install the test tools:

```
pip install ".[test]"
```

## Example

```python
from rauf.state import RaufState
from rauf.backpressure import build_backpressure_pack
from rauf.escalation import apply_model_choice

state = RaufState(
    last_verification_status="fail",
    last_verification_output="--- FAIL: TestFoo (0.00s)",
    last_verification_command="make test",
)
print(build_backpressure_pack(state, git_available=False))

print(apply_model_choice("--verbose", "--model", "opus", override=False))
# --verbose --model opus
```

## What it does not do

This is a library with no command of its own. It does not run the
iteration loop, start the agent harness or retry it. It does not read a
configuration file, and it does not write reports. The calling program does
those things and passes in a `RuntimeConfig`, a `RaufState` and, for
architect mode, a function that runs the harness.

## Running the tests

```
pytest
```