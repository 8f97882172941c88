"""Strategy steps and the conditions that decide whether they run."""

from __future__ import annotations

import sys
from dataclasses import dataclass


@dataclass
class IterationResult:
    """Outcome of one iteration of the loop."""

    verify_status: str = ""
    verify_output: str = ""
    stalled: bool = False
    head_before: str = ""
    head_after: str = ""
    no_progress: int = 0
    exit_reason: str = ""


@dataclass
class StrategyStep:
    """One step of a run strategy: a mode and how long to keep running it.

    ``if_`` gates whether the step runs at all, based on the previous result;
    ``until`` ends the step early once its condition is met.
    """

    mode: str = ""
    iterations: int = 0
    until: str = ""
    if_: str = ""


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def should_run_step(step: StrategyStep, last_result: IterationResult) -> bool:
    """Decide whether a step runs, given the result of the previous iteration."""
    if not step.if_:
        return True
    condition = step.if_.lower()
    if condition == "stalled":
        return last_result.stalled
    if condition == "verify_fail":
        return last_result.verify_status == "fail"
    if condition == "verify_pass":
        return last_result.verify_status == "pass"
    _warn(f"unknown strategy 'if' condition {step.if_!r}, defaulting to true")
    return True


def should_continue_until(step: StrategyStep, result: IterationResult) -> bool:
    """Decide whether a step keeps iterating after the given result."""
    if not step.until:
        return True
    condition = step.until.lower()
    if condition == "verify_pass":
        return result.verify_status != "pass"
    if condition == "verify_fail":
        return result.verify_status != "fail"
    _warn(f"unknown strategy 'until' condition {step.until!r}, continuing to max iterations")
    return True