import pytest

from rauf.strategy import (
    IterationResult,
    StrategyStep,
    should_continue_until,
    should_run_step,
)


@pytest.mark.parametrize(
    "step, result, expected",
    [
        (StrategyStep(mode="build"), IterationResult(stalled=False), True),
        (StrategyStep(mode="plan", if_="stalled"), IterationResult(stalled=True), True),
        (StrategyStep(mode="plan", if_="stalled"), IterationResult(stalled=False), False),
        (StrategyStep(mode="build", if_="verify_pass"), IterationResult(verify_status="pass"), True),
        (StrategyStep(mode="build", if_="verify_pass"), IterationResult(verify_status="fail"), False),
        (StrategyStep(mode="build", if_="verify_fail"), IterationResult(verify_status="fail"), True),
        (StrategyStep(mode="build", if_="verify_fail"), IterationResult(verify_status="pass"), False),
        (StrategyStep(mode="build", if_="verify_fail"), IterationResult(verify_status="skipped"), False),
        (StrategyStep(mode="build", if_="unknown_condition"), IterationResult(), True),
    ],
)
def test_should_run_step(step, result, expected):
    assert should_run_step(step, result) is expected


def test_should_run_step_condition_is_case_insensitive():
    step = StrategyStep(mode="build", if_="STALLED")
    assert should_run_step(step, IterationResult(stalled=False)) is False
    assert should_run_step(step, IterationResult(stalled=True)) is True


def test_should_run_step_unknown_condition_warns(capsys):
    assert should_run_step(StrategyStep(if_="weird"), IterationResult()) is True
    assert "unknown strategy 'if' condition" in capsys.readouterr().err


@pytest.mark.parametrize(
    "step, result, expected",
    [
        (StrategyStep(mode="build", iterations=5, until=""), IterationResult(verify_status="skipped"), True),
        (StrategyStep(mode="build", iterations=5, until="verify_pass"), IterationResult(verify_status="fail"), True),
        (StrategyStep(mode="build", iterations=5, until="verify_pass"), IterationResult(verify_status="pass"), False),
        (StrategyStep(mode="build", iterations=5, until="verify_fail"), IterationResult(verify_status="pass"), True),
        (StrategyStep(mode="build", iterations=5, until="verify_fail"), IterationResult(verify_status="fail"), False),
        (
            StrategyStep(mode="build", iterations=5, until="unknown_condition"),
            IterationResult(verify_status="pass"),
            True,
        ),
    ],
)
def test_should_continue_until(step, result, expected):
    assert should_continue_until(step, result) is expected


def test_should_continue_until_unknown_condition_warns(capsys):
    assert should_continue_until(StrategyStep(until="later"), IterationResult()) is True
    assert "unknown strategy 'until' condition" in capsys.readouterr().err


def test_iteration_result_defaults():
    result = IterationResult()
    assert (result.verify_status, result.stalled, result.no_progress, result.exit_reason) == ("", False, 0, "")