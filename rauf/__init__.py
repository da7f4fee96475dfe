"""Guardrails, backpressure prompts and model escalation for iterative agent loops."""

__version__ = "1.1.1"