"""Failure counters, recovery modes and switching between the default and strong model."""

from __future__ import annotations

from dataclasses import dataclass, replace

from rauf.state import RaufState, RecoveryConfig, RuntimeConfig

_DEFAULT_RECOVERY_LIMIT = 2
_QUOTES = ("'", '"')


@dataclass
class EscalationEvent:
    """What the escalation step did: "escalated", "de_escalated", "suppressed" or "none"."""

    type: str = "none"
    from_model: str = ""
    to_model: str = ""
    reason: str = ""
    cooldown: int = 0


def _split_args(args: str) -> list[str] | None:
    """Split a command line on unquoted whitespace, keeping quotes in the tokens.

    Returns None when a quote is left open.
    """
    parts: list[str] = []
    current: list[str] = []
    has_token = False
    quote = ""
    escaped = False
    for char in args:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\" and quote != "'":
            current.append(char)
            escaped = True
            has_token = True
            continue
        if quote:
            current.append(char)
            if char == quote:
                quote = ""
            continue
        if char in _QUOTES:
            quote = char
            current.append(char)
            has_token = True
            continue
        if char.isspace():
            if has_token:
                parts.append("".join(current))
                current = []
                has_token = False
            continue
        current.append(char)
        has_token = True
    if quote:
        return None
    if has_token:
        parts.append("".join(current))
    return parts


def _args_parts(harness_args: str) -> list[str]:
    parts = _split_args(harness_args)
    return parts if parts is not None else harness_args.split()


def should_escalate_model(state: RaufState, cfg: RuntimeConfig) -> tuple[bool, str, str]:
    """Return ``(should_escalate, trigger_reason, suppression_reason)``."""
    esc = cfg.model_escalation
    if not esc.enabled or not cfg.model_strong:
        return False, "", ""

    if esc.consecutive_verify_fails > 0 and state.consecutive_verify_fails >= esc.consecutive_verify_fails:
        trigger = "consecutive_verify_fails"
    elif esc.no_progress_iters > 0 and state.no_progress_streak >= esc.no_progress_iters:
        trigger = "no_progress_iters"
    elif esc.guardrail_failures > 0 and state.consecutive_guardrail_fails >= esc.guardrail_failures:
        trigger = "guardrail_failures"
    else:
        return False, "", ""

    if state.escalation_count >= esc.max_escalations:
        return False, trigger, "max_escalations_reached"
    if state.current_model == cfg.model_strong and state.min_strong_iterations_remaining > 0:
        return False, trigger, "min_strong_iterations_active"
    return True, trigger, ""


def should_deescalate_model(state: RaufState, cfg: RuntimeConfig) -> bool:
    """True when on the strong model and its minimum stay has run out."""
    if not cfg.model_escalation.enabled:
        return False
    if state.current_model != cfg.model_strong:
        return False
    return state.min_strong_iterations_remaining <= 0


def compute_effective_model(state: RaufState, cfg: RuntimeConfig) -> str:
    """Return the model to use for this iteration."""
    if not cfg.model_escalation.enabled:
        return cfg.model_default
    return state.current_model or cfg.model_default


def contains_model_flag(harness_args: str, model_flag: str) -> bool:
    """True if the arguments already carry ``model_flag`` as ``flag value`` or ``flag=value``."""
    if not model_flag:
        return False
    return any(
        part == model_flag or part.startswith(model_flag + "=")
        for part in _args_parts(harness_args)
    )


def apply_model_choice(harness_args: str, model_flag: str, model_name: str, override: bool) -> str:
    """Add the model flag to the arguments; replace an existing one only when ``override``."""
    if not model_flag or not model_name:
        return harness_args

    if contains_model_flag(harness_args, model_flag):
        if not override:
            return harness_args
        kept: list[str] = []
        skip_next = False
        for part in _args_parts(harness_args):
            if skip_next:
                skip_next = False
                continue
            if part == model_flag:
                skip_next = True
                continue
            if part.startswith(model_flag + "="):
                continue
            kept.append(part)
        return " ".join([*kept, model_flag, model_name])

    if not harness_args:
        return f"{model_flag} {model_name}"
    return f"{harness_args} {model_flag} {model_name}"


def _limit(value: int) -> int:
    return value if value > 0 else _DEFAULT_RECOVERY_LIMIT


def update_backpressure_state(
    state: RaufState,
    cfg: RecoveryConfig,
    verify_failed: bool,
    guardrail_failed: bool,
    no_progress: bool,
) -> RaufState:
    """Return a new state with failure counters and recovery mode updated."""
    verify_fails = state.consecutive_verify_fails + 1 if verify_failed else 0
    guardrail_fails = state.consecutive_guardrail_fails + 1 if guardrail_failed else 0
    streak = state.no_progress_streak + 1 if no_progress else 0

    if guardrail_fails >= _limit(cfg.guardrail_failures):
        mode = "guardrail"
    elif verify_fails >= _limit(cfg.consecutive_verify_fails):
        mode = "verify"
    elif streak >= _limit(cfg.no_progress_iters):
        mode = "no_progress"
    else:
        mode = ""

    return replace(
        state,
        consecutive_verify_fails=verify_fails,
        consecutive_guardrail_fails=guardrail_fails,
        no_progress_streak=streak,
        recovery_mode=mode,
    )


def update_model_escalation_state(
    state: RaufState, cfg: RuntimeConfig
) -> tuple[RaufState, EscalationEvent]:
    """Switch models as the counters demand; return the new state and what happened."""
    event = EscalationEvent()
    esc = cfg.model_escalation
    if not esc.enabled:
        return state, event

    state = replace(state)
    if state.min_strong_iterations_remaining > 0:
        state.min_strong_iterations_remaining -= 1

    escalate, trigger, suppressed = should_escalate_model(state, cfg)
    if escalate:
        if state.current_model != cfg.model_strong:
            event = EscalationEvent(
                type="escalated",
                from_model=state.current_model or cfg.model_default,
                to_model=cfg.model_strong,
                reason=trigger,
                cooldown=esc.cooldown_iters,
            )
            state.current_model = cfg.model_strong
            state.escalation_count += 1
            state.min_strong_iterations_remaining = esc.cooldown_iters
            state.last_escalation_reason = trigger
    elif suppressed:
        event = EscalationEvent(
            type="suppressed",
            from_model=state.current_model or cfg.model_default,
            to_model=cfg.model_strong,
            reason=f"trigger={trigger}, blocker={suppressed}",
            cooldown=state.min_strong_iterations_remaining,
        )
    elif should_deescalate_model(state, cfg):
        event = EscalationEvent(
            type="de_escalated",
            from_model=state.current_model,
            to_model=cfg.model_default,
            reason="min_strong_iterations_expired",
        )
        state.current_model = cfg.model_default
        state.last_escalation_reason = ""

    return state, event