"""Checks that reject an iteration's changes when they break the configured limits."""

from __future__ import annotations

import os

from rauf.gitcmd import Git, GitError
from rauf.state import RuntimeConfig

_ARROW = " -> "
_SIMPLE_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "t": "\t", "r": "\r"}
_OCTAL = frozenset("01234567")


def _cwd() -> str | None:
    try:
        return os.getcwd()
    except OSError:
        return None


def _absolute(path: str, root: str | None) -> str:
    if root is not None and not os.path.isabs(path):
        return os.path.join(root, path)
    return path


def _within(path: str, base: str) -> bool:
    return path == base or path.startswith(base + os.sep)


def enforce_guardrails(
    cfg: RuntimeConfig, head_before: str, head_after: str, git: Git | None = None
) -> tuple[bool, str]:
    """Check commit count, changed-file count and forbidden paths; return ``(ok, reason)``."""
    git = git or Git()
    if cfg.max_commits > 0:
        try:
            count = git.output("rev-list", "--count", f"{head_before}..{head_after}")
        except GitError:
            # Fail closed when the commit count cannot be determined.
            return False, "git_error_commit_count"
        count = count.strip()
        if count:
            try:
                if int(count) > cfg.max_commits:
                    return False, "max_commits_exceeded"
            except ValueError:
                pass

    try:
        files = list_changed_files(head_before, head_after, git)
        files_failed = False
    except GitError:
        files, files_failed = [], True

    if files_failed and (cfg.max_files_changed > 0 or cfg.forbidden_paths):
        return False, "git_error_file_list"

    if cfg.max_files_changed > 0 and len(files) > cfg.max_files_changed:
        return False, "max_files_changed"

    if cfg.forbidden_paths:
        root = _cwd()
        for file in files:
            file_clean = os.path.normpath(file)
            file_abs = _absolute(file_clean, root)
            for entry in cfg.forbidden_paths:
                forbidden = os.path.normpath(entry.strip())
                if not forbidden:
                    continue
                if root is not None:
                    if _within(file_abs, _absolute(forbidden, root)):
                        return False, "forbidden_path:" + forbidden
                elif _within(file_clean, forbidden):
                    return False, "forbidden_path:" + forbidden

    return True, ""


def enforce_verification_guardrails(
    cfg: RuntimeConfig, verify_status: str, plan_changed: bool, worktree_changed: bool
) -> tuple[bool, str]:
    """Require passing verification for plan updates and any verification for changes."""
    if cfg.require_verify_for_plan_update and plan_changed and verify_status != "pass":
        return False, "plan_update_without_verify"
    if cfg.require_verify_on_change and worktree_changed and verify_status == "skipped":
        return False, "verify_required_for_change"
    return True, ""


def enforce_missing_verify_guardrail(
    plan_path: str, head_before: str, head_after: str, plan_changed: bool, git: Git | None = None
) -> tuple[bool, str]:
    """Without a verify command, allow only changes that touch the plan file alone."""
    if not plan_changed:
        return False, "missing_verify_plan_not_updated"
    root = _cwd()
    plan_abs = _absolute(os.path.normpath(plan_path), root)
    try:
        files = list_changed_files(head_before, head_after, git)
    except GitError:
        return False, "git_error_file_list"
    for file in files:
        if _absolute(os.path.normpath(file), root) != plan_abs:
            return False, "missing_verify_non_plan_change"
    return True, ""


def enforce_missing_verify_no_git(
    plan_changed: bool, fingerprint_before: str, fingerprint_after: str
) -> tuple[bool, str]:
    """The same rule as with git, judged from workspace fingerprints."""
    if not plan_changed:
        return False, "missing_verify_plan_not_updated"
    if fingerprint_before and fingerprint_after and fingerprint_before != fingerprint_after:
        return False, "missing_verify_non_plan_change"
    return True, ""


def list_changed_files(head_before: str, head_after: str, git: Git | None = None) -> list[str]:
    """Return files changed between two heads, or in the work tree when they are equal.

    Raises GitError when git cannot report them, so callers can fail closed.
    """
    git = git or Git()
    if head_after != head_before:
        return split_lines(git.output("diff", "--name-only", f"{head_before}..{head_after}"))
    files = []
    for line in split_status_lines(git.output_raw("status", "--porcelain")):
        # Porcelain v1 lines are "XY PATH": two status characters, a space, the path.
        if len(line) < 4:
            continue
        path = parse_status_path(line[3:])
        if path:
            files.append(path)
    return files


def parse_status_path(value: str) -> str:
    """Return the path of a porcelain entry, the destination for renames, unquoted."""
    value = value.strip()
    if not value:
        return ""
    arrow = find_unquoted_arrow(value)
    if arrow >= 0:
        return unquote_git_path(value[arrow + len(_ARROW):].strip())
    return unquote_git_path(value)


def find_unquoted_arrow(s: str) -> int:
    """Return the index of the first " -> " outside double quotes, or -1."""
    in_quote = False
    for i, char in enumerate(s):
        if char == '"':
            if not in_quote:
                in_quote = True
            else:
                backslashes = len(s[:i]) - len(s[:i].rstrip("\\"))
                if backslashes % 2 == 0:
                    in_quote = False
            continue
        if not in_quote and s.startswith(_ARROW, i):
            return i
    return -1


def unquote_git_path(path: str) -> str:
    """Undo git's C-style quoting of a path; unquoted paths come back as given."""
    path = path.strip()
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path
    inner = path[1:-1].encode("utf-8", "surrogateescape")
    out = bytearray()
    i = 0
    size = len(inner)
    while i < size:
        byte = inner[i : i + 1]
        if byte == b"\\" and i + 1 < size:
            nxt = chr(inner[i + 1])
            if nxt in _SIMPLE_ESCAPES:
                out += _SIMPLE_ESCAPES[nxt].encode()
                i += 2
                continue
            digits = inner[i + 1 : i + 4].decode("latin-1")
            if i + 3 < size and len(digits) == 3 and set(digits) <= _OCTAL:
                value = int(digits, 8)
                if value <= 255:
                    out.append(value)
                    i += 4
                    continue
        out += byte
        i += 1
    return out.decode("utf-8", "surrogateescape")


def split_lines(value: str) -> list[str]:
    """Split into stripped, non-empty lines."""
    return [line.strip() for line in value.split("\n") if line.strip()]


def split_status_lines(value: str) -> list[str]:
    """Split porcelain output into non-blank lines, keeping leading spaces."""
    lines = (line.rstrip("\r") for line in value.split("\n"))
    return [line for line in lines if line.strip()]