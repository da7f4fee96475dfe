import pytest

from rauf.escalation import (
    EscalationEvent,
    apply_model_choice,
    compute_effective_model,
    contains_model_flag,
    should_deescalate_model,
    should_escalate_model,
    update_backpressure_state,
    update_model_escalation_state,
)
from rauf.state import EscalationConfig, RaufState, RecoveryConfig, RuntimeConfig


def test_apply_model_choice_quoted_flag():
    result = apply_model_choice('--flag="value with spaces" --verbose', "--model", "opus", False)
    assert result == '--flag="value with spaces" --verbose --model opus'


def test_apply_model_choice_adds_flag():
    assert apply_model_choice("--verbose", "--model", "opus", False) == "--verbose --model opus"


def test_apply_model_choice_empty_args():
    assert apply_model_choice("", "--model", "opus", False) == "--model opus"


def test_apply_model_choice_respects_existing():
    result = apply_model_choice("--model sonnet --verbose", "--model", "opus", False)
    assert result == "--model sonnet --verbose"


def test_apply_model_choice_override_existing():
    result = apply_model_choice("--model sonnet --verbose", "--model", "opus", True)
    assert result == "--verbose --model opus"


def test_apply_model_choice_override_equals_style():
    result = apply_model_choice("--model=sonnet --verbose", "--model", "opus", True)
    assert result == "--verbose --model opus"


def test_apply_model_choice_empty_model():
    assert apply_model_choice("--verbose", "--model", "", False) == "--verbose"


def test_apply_model_choice_empty_flag():
    assert apply_model_choice("--verbose", "", "opus", False) == "--verbose"


@pytest.mark.parametrize(
    "args, flag, expected",
    [
        ("--model sonnet --verbose", "--model", True),
        ("--verbose", "--model", False),
        ("--model=sonnet --verbose", "--model", True),
        ("", "--model", False),
        ("--model-other foo", "--model", False),
        ("--model sonnet", "", False),
    ],
)
def test_contains_model_flag(args, flag, expected):
    assert contains_model_flag(args, flag) is expected


def test_contains_model_flag_ignores_quoted_text():
    assert contains_model_flag('--prompt "use --model here" --verbose', "--model") is False


def test_should_escalate_disabled():
    state = RaufState(consecutive_verify_fails=10)
    cfg = RuntimeConfig(model_escalation=EscalationConfig(enabled=False), model_strong="opus")
    assert should_escalate_model(state, cfg)[0] is False


def test_should_escalate_no_strong_model():
    state = RaufState(consecutive_verify_fails=10)
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, consecutive_verify_fails=2),
        model_strong="",
    )
    assert should_escalate_model(state, cfg) == (False, "", "")


def test_should_escalate_consecutive_verify_fails():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, consecutive_verify_fails=2, max_escalations=5),
        model_strong="opus",
    )
    assert should_escalate_model(RaufState(consecutive_verify_fails=1), cfg)[0] is False
    escalate, reason, _ = should_escalate_model(RaufState(consecutive_verify_fails=2), cfg)
    assert escalate is True
    assert reason == "consecutive_verify_fails"


def test_should_escalate_no_progress_iters():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, no_progress_iters=3, max_escalations=5),
        model_strong="opus",
    )
    escalate, reason, _ = should_escalate_model(RaufState(no_progress_streak=3), cfg)
    assert escalate is True
    assert reason == "no_progress_iters"


def test_should_escalate_guardrail_failures():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, guardrail_failures=2, max_escalations=5),
        model_strong="opus",
    )
    escalate, reason, _ = should_escalate_model(RaufState(consecutive_guardrail_fails=2), cfg)
    assert escalate is True
    assert reason == "guardrail_failures"


def test_should_escalate_max_escalations_respected():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, consecutive_verify_fails=2, max_escalations=2),
        model_strong="opus",
    )
    state = RaufState(consecutive_verify_fails=10, escalation_count=2)
    assert should_escalate_model(state, cfg) == (
        False,
        "consecutive_verify_fails",
        "max_escalations_reached",
    )


def test_should_escalate_min_strong_iterations_active():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(
            enabled=True, consecutive_verify_fails=2, cooldown_iters=5, max_escalations=5
        ),
        model_strong="opus",
    )
    state = RaufState(
        consecutive_verify_fails=10, current_model="opus", min_strong_iterations_remaining=3
    )
    assert should_escalate_model(state, cfg) == (
        False,
        "consecutive_verify_fails",
        "min_strong_iterations_active",
    )


def test_cooldown_prevents_toggle():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(
            enabled=True, consecutive_verify_fails=2, cooldown_iters=3, max_escalations=5
        ),
        model_strong="opus",
    )
    state = RaufState(
        consecutive_verify_fails=0, current_model="opus", min_strong_iterations_remaining=2
    )
    assert should_deescalate_model(state, cfg) is False
    state.min_strong_iterations_remaining = 0
    assert should_deescalate_model(state, cfg) is True


def test_compute_effective_model_default_when_disabled():
    cfg = RuntimeConfig(model_escalation=EscalationConfig(enabled=False), model_default="sonnet")
    assert compute_effective_model(RaufState(), cfg) == "sonnet"


def test_compute_effective_model_returns_current_model():
    cfg = RuntimeConfig(model_escalation=EscalationConfig(enabled=True), model_default="sonnet")
    assert compute_effective_model(RaufState(current_model="opus"), cfg) == "opus"


def test_compute_effective_model_falls_back_to_default():
    cfg = RuntimeConfig(model_escalation=EscalationConfig(enabled=True), model_default="sonnet")
    assert compute_effective_model(RaufState(), cfg) == "sonnet"


@pytest.fixture
def full_cfg():
    return RuntimeConfig(
        model_escalation=EscalationConfig(
            enabled=True,
            consecutive_verify_fails=2,
            no_progress_iters=2,
            guardrail_failures=2,
            cooldown_iters=2,
            max_escalations=2,
        ),
        model_strong="opus",
    )


def test_verify_failure_counter_and_escalation(full_cfg):
    state = update_backpressure_state(RaufState(), full_cfg.recovery, True, False, False)
    assert state.consecutive_verify_fails == 1
    state = update_backpressure_state(state, full_cfg.recovery, True, False, False)
    state, event = update_model_escalation_state(state, full_cfg)
    assert state.current_model == "opus"
    assert state.escalation_count == 1
    assert state.min_strong_iterations_remaining == 2
    assert event.type == "escalated"
    assert event.reason == "consecutive_verify_fails"


def test_success_resets_failure_counters(full_cfg):
    state = RaufState(
        consecutive_verify_fails=1,
        no_progress_streak=1,
        consecutive_guardrail_fails=1,
        recovery_mode="verify",
    )
    state = update_backpressure_state(state, full_cfg.recovery, False, False, False)
    assert (state.consecutive_verify_fails, state.no_progress_streak, state.consecutive_guardrail_fails) == (0, 0, 0)
    assert state.recovery_mode == ""


def test_recovery_mode_verify(full_cfg):
    state = update_backpressure_state(
        RaufState(consecutive_verify_fails=1), full_cfg.recovery, True, False, False
    )
    assert state.recovery_mode == "verify"


def test_recovery_mode_no_progress(full_cfg):
    state = update_backpressure_state(
        RaufState(no_progress_streak=1), full_cfg.recovery, False, False, True
    )
    assert state.recovery_mode == "no_progress"


def test_recovery_mode_guardrail_takes_priority():
    state = RaufState(consecutive_verify_fails=5, consecutive_guardrail_fails=5)
    state = update_backpressure_state(state, RecoveryConfig(), True, True, True)
    assert state.recovery_mode == "guardrail"


def test_recovery_thresholds_are_configurable():
    cfg = RecoveryConfig(consecutive_verify_fails=3)
    state = update_backpressure_state(RaufState(consecutive_verify_fails=1), cfg, True, False, False)
    assert state.recovery_mode == ""
    state = update_backpressure_state(state, cfg, True, False, False)
    assert state.recovery_mode == "verify"


def test_update_backpressure_state_leaves_input_unchanged():
    original = RaufState(consecutive_verify_fails=1)
    update_backpressure_state(original, RecoveryConfig(), True, False, False)
    assert original.consecutive_verify_fails == 1


def test_update_escalation_state_suppression():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, consecutive_verify_fails=2, max_escalations=1),
        model_strong="opus",
    )
    state = RaufState(consecutive_verify_fails=2, escalation_count=1, current_model="sonnet")
    _, event = update_model_escalation_state(state, cfg)
    assert event.type == "suppressed"
    assert "max_escalations_reached" in event.reason
    assert event.to_model == "opus"
    assert event.from_model == "sonnet"


def test_update_escalation_state_deescalation():
    cfg = RuntimeConfig(
        model_escalation=EscalationConfig(enabled=True, cooldown_iters=5),
        model_strong="opus",
        model_default="sonnet",
    )
    state = RaufState(current_model="opus", min_strong_iterations_remaining=1)
    state, event = update_model_escalation_state(state, cfg)
    assert event.type == "de_escalated"
    assert state.min_strong_iterations_remaining == 0
    assert state.current_model == "sonnet"

    state.current_model = "sonnet"
    state, event = update_model_escalation_state(state, cfg)
    assert event == EscalationEvent(type="none")


def test_update_escalation_state_disabled_returns_none_event():
    cfg = RuntimeConfig(model_escalation=EscalationConfig(enabled=False), model_strong="opus")
    state = RaufState(consecutive_verify_fails=9)
    new_state, event = update_model_escalation_state(state, cfg)
    assert event.type == "none"
    assert new_state == state