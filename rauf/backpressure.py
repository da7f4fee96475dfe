"""Turning the previous iteration's failures into instructions for the next prompt."""

from __future__ import annotations

import re

from rauf.fence import scan_lines_outside_fence
from rauf.gitcmd import Git, GitError
from rauf.state import RaufState

_HIGH_SIGNAL_PATTERNS = tuple(
    re.compile(pattern, flags | re.ASCII)
    for pattern, flags in (
        (r"\bFAIL\b", re.IGNORECASE),
        (r"\bFAILED\b", re.IGNORECASE),
        (r"\bERROR\b", re.IGNORECASE),
        (r"\bpanic\b", re.IGNORECASE),
        (r"\bundefined\b", re.IGNORECASE),
        (r"no such file", re.IGNORECASE),
        (r"\w+\.\w+:\d+", 0),  # file:line, e.g. foo.go:42
        (r"^---\s*(FAIL|PASS):", 0),
        (r"^=== (RUN|FAIL)", re.IGNORECASE),
        (r"expected.*got", re.IGNORECASE),
        (r"assertion failed", re.IGNORECASE),
    )
)

_GUARDRAIL_ADVICE = {
    "max_files_changed": "Reduce scope: modify fewer files. Prefer smaller, focused patches.",
    "max_commits_exceeded": "Squash work into fewer commits. Complete one task at a time.",
    "verify_required_for_change": (
        "You must run Verify successfully before changing files. Define or fix verification first."
    ),
    "plan_update_without_verify": (
        "Plan changed but verification didn't pass. Fix verification before modifying the plan."
    ),
    "missing_verify_plan_not_updated": (
        "Verification is missing. Update the plan to add a valid Verify command."
    ),
    "missing_verify_non_plan_change": (
        "Verification is missing. You may only update the plan until Verify is defined."
    ),
}

_FORBIDDEN_PREFIX = "forbidden_path:"

_RECOVERY_TEXT = {
    "verify": (
        "**Mode: VERIFY RECOVERY**\n"
        "- Only fix the verification failure.\n"
        "- Do NOT start new work or make unrelated changes.\n"
        "- Focus exclusively on making the test pass.\n\n"
    ),
    "guardrail": (
        "**Mode: GUARDRAIL RECOVERY**\n"
        "- Only adjust your approach to unblock the guardrail.\n"
        "- Do NOT retry the forbidden change.\n"
        "- Choose an alternative file or strategy.\n\n"
    ),
    "no_progress": (
        "**Mode: NO-PROGRESS RECOVERY**\n"
        "- You must either:\n"
        "  1. Reduce scope to a smaller, achievable change, OR\n"
        "  2. Ask a clarifying question via RAUF_QUESTION, OR\n"
        "  3. Explicitly abandon this approach and try a different strategy\n"
        "- Doing the same thing again will NOT work.\n\n"
    ),
}

_EXIT_REASON_TEXT = {
    "no_progress": (
        "- Action Required: Make meaningful progress. Consider:\n"
        "  - Reducing scope to a smaller change\n"
        "  - Re-running verification with additional diagnostics\n"
        "  - Asking a clarifying question via RAUF_QUESTION\n"
        "  - Abandoning the current approach and trying a different strategy\n\n"
    ),
    "no_unchecked_tasks": "- Note: All tasks complete. Emit RAUF_COMPLETE if done.\n\n",
}

_PRIORITY = (
    "**Priority:**\n"
    "1. Resolve Guardrail Failures\n"
    "2. Fix Verification Failures\n"
    "3. Address Plan Changes\n"
    "4. Address stalling/retry issues if present "
    "(often caused by excessive output or repeated tool usage)\n\n"
)


def format_guardrail_backpressure(reason: str) -> str:
    """Turn a guardrail reason code into an actionable instruction."""
    if not reason:
        return ""
    if reason.startswith(_FORBIDDEN_PREFIX):
        path = reason.removeprefix(_FORBIDDEN_PREFIX)
        return (
            "You attempted to modify forbidden directory: "
            + path
            + ". Choose an alternative file/approach."
        )
    return _GUARDRAIL_ADVICE.get(reason, "Guardrail violation: " + reason)


def has_backpressure_response(output: str) -> bool:
    """True if the output has a "## Backpressure Response" header outside code fences."""
    return scan_lines_outside_fence(
        output, lambda trimmed: trimmed.startswith("## Backpressure Response")
    )


def summarize_verify_output(output: str, max_lines: int) -> list[str]:
    """Pick up to ``max_lines`` high-signal lines (errors, failures, locations)."""
    if not output or max_lines <= 0:
        return []
    result: list[str] = []
    for line in output.split("\n"):
        if len(result) >= max_lines:
            break
        trimmed = line.strip()
        if not trimmed:
            continue
        if any(pattern.search(line) for pattern in _HIGH_SIGNAL_PATTERNS):
            result.append(trimmed)
    return result


def generate_plan_diff(
    plan_path: str, git_available: bool, max_lines: int, git: Git | None = None
) -> str:
    """Return a truncated diff of the plan file, tagged with where it came from."""
    if not git_available or not plan_path:
        return "Plan file was modified (git diff unavailable)."
    git = git or Git()

    source = "working-tree"
    try:
        output = git.output_raw("diff", "--", plan_path)
    except GitError:
        output = ""
    if not output:
        try:
            output = git.output_raw("diff", "--cached", "--", plan_path)
        except GitError:
            return "Plan file was modified (git diff failed)."
        source = "staged"

    if not output:
        return "Plan file was modified (diff empty)."

    lines = output.split("\n")
    if len(lines) > max_lines:
        lines = [*lines[:max_lines], "... (truncated)"]
    return f"[source: {source}]\n" + "\n".join(lines)


def _guardrail_section(state: RaufState) -> str:
    return (
        "### Guardrail Failure\n\n"
        "- Status: **BLOCKED**\n"
        f"- Reason: `{state.prior_guardrail_reason}`\n"
        f"- Action Required: {format_guardrail_backpressure(state.prior_guardrail_reason)}\n\n"
    )


def _verify_section(state: RaufState) -> str:
    parts = [
        "### Verification Failure\n\n",
        f"- Verify Command: `{state.last_verification_command}`\n",
        "- Status: **FAIL**\n",
    ]
    if state.consecutive_verify_fails >= 2:
        parts.append(
            f"- Consecutive Failures: {state.consecutive_verify_fails}\n"
            "- **HYPOTHESIS REQUIRED**: Before attempting another fix, you MUST:\n"
            "  1. State your diagnosis of why the previous fix failed\n"
            "  2. Explain what you will do differently this time\n"
            "  3. Only then proceed with the fix\n\n"
        )
    else:
        parts.append("- Action Required: Fix these errors before any new work.\n\n")

    key_errors = summarize_verify_output(state.last_verification_output, 30)
    if key_errors:
        parts.append("**Key Errors:**\n\n```\n")
        parts.extend(line + "\n" for line in key_errors)
        parts.append("```\n\n")
    return "".join(parts)


def _exit_reason_section(state: RaufState) -> str:
    return (
        "### Prior Exit Reason\n\n"
        f"- Reason: `{state.prior_exit_reason}`\n"
        + _EXIT_REASON_TEXT.get(state.prior_exit_reason, "\n")
    )


def _plan_drift_section(state: RaufState) -> str:
    parts = [
        "### Plan Changes Detected\n\n",
        "- Plan was modified in the previous iteration.\n",
        "- Action Required: Keep plan edits minimal and justify them explicitly.\n",
    ]
    if state.plan_diff_summary:
        parts.append(f"\n**Diff excerpt:**\n\n```diff\n{state.plan_diff_summary}\n```\n")
    parts.append("\n")
    return "".join(parts)


def _retry_section(state: RaufState) -> str:
    parts = ["### Harness Retries\n\n", f"- Retries: {state.prior_retry_count}\n"]
    if state.prior_retry_reason:
        parts.append(f"- Matched: `{state.prior_retry_reason}`\n")
    parts.append(
        "- Note: The harness experienced transient failures (e.g., rate limits).\n"
        "- Action: Keep responses concise, avoid large file dumps, "
        "reduce tool calls per iteration.\n\n"
    )
    return "".join(parts)


def build_backpressure_pack(state: RaufState, git_available: bool) -> str:
    """Assemble the Backpressure Pack section, or "" when there is nothing to report."""
    has_guardrail = state.prior_guardrail_status == "fail" and bool(state.prior_guardrail_reason)
    has_verify_fail = (
        state.last_verification_status == "fail" and bool(state.last_verification_output)
    )
    has_exit_reason = bool(state.prior_exit_reason) and (
        state.prior_exit_reason != "completion_contract_satisfied"
    )
    has_plan_drift = (
        bool(state.plan_hash_before)
        and bool(state.plan_hash_after)
        and state.plan_hash_before != state.plan_hash_after
    )
    has_retry = state.prior_retry_count > 0
    has_recovery_mode = bool(state.recovery_mode)

    if not any(
        (has_guardrail, has_verify_fail, has_exit_reason, has_plan_drift, has_retry, has_recovery_mode)
    ):
        return ""

    parts = [
        "## Backpressure Pack (from previous iteration)\n\n",
        "**IMPORTANT: Address these issues FIRST before any new work.**\n\n",
    ]
    if has_recovery_mode:
        parts.append("### ⚠️ Recovery Mode Active\n\n")
        parts.append(_RECOVERY_TEXT.get(state.recovery_mode, ""))
    parts.append(_PRIORITY)
    if has_guardrail:
        parts.append(_guardrail_section(state))
    if has_verify_fail:
        parts.append(_verify_section(state))
    if has_exit_reason:
        parts.append(_exit_reason_section(state))
    if has_plan_drift:
        parts.append(_plan_drift_section(state))
    if has_retry:
        parts.append(_retry_section(state))
    parts.append("---\n\n")
    return "".join(parts)