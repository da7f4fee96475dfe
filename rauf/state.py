"""Configuration and per-run state shared by guardrails, backpressure and escalation."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EscalationConfig:
    """When to switch to the stronger model and how long to stay there."""

    enabled: bool = False
    consecutive_verify_fails: int = 0
    no_progress_iters: int = 0
    guardrail_failures: int = 0
    cooldown_iters: int = 0
    max_escalations: int = 0


def default_escalation_config() -> EscalationConfig:
    """Return the default escalation settings: disabled, every threshold at 2."""
    return EscalationConfig(
        enabled=False,
        consecutive_verify_fails=2,
        no_progress_iters=2,
        guardrail_failures=2,
        cooldown_iters=2,
        max_escalations=2,
    )


@dataclass
class RecoveryConfig:
    """Thresholds that put the loop into a recovery mode; zero means the built-in default."""

    consecutive_verify_fails: int = 0
    no_progress_iters: int = 0
    guardrail_failures: int = 0


@dataclass
class RuntimeConfig:
    """Settings that drive guardrails and model selection."""

    max_commits: int = 0
    max_files_changed: int = 0
    forbidden_paths: list[str] = field(default_factory=list)
    require_verify_for_plan_update: bool = False
    require_verify_on_change: bool = False
    model_default: str = ""
    model_strong: str = ""
    model_flag: str = ""
    model_escalation: EscalationConfig = field(default_factory=EscalationConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)


@dataclass
class RaufState:
    """State carried from one iteration to the next."""

    last_verification_status: str = ""
    last_verification_command: str = ""
    last_verification_output: str = ""
    prior_guardrail_status: str = ""
    prior_guardrail_reason: str = ""
    prior_exit_reason: str = ""
    prior_retry_count: int = 0
    prior_retry_reason: str = ""
    plan_hash_before: str = ""
    plan_hash_after: str = ""
    plan_diff_summary: str = ""
    recovery_mode: str = ""
    consecutive_verify_fails: int = 0
    consecutive_guardrail_fails: int = 0
    no_progress_streak: int = 0
    current_model: str = ""
    escalation_count: int = 0
    min_strong_iterations_remaining: int = 0
    last_escalation_reason: str = ""