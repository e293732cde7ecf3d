from __future__ import annotations

import pytest

from migration_lp_bot.execution.outcomes import (
    Failure,
    Success,
    SuccessWithWarning,
    classify_error,
    describe,
    is_success,
    parse_instruction_error,
)


@pytest.mark.parametrize(
    "error",
    [
        {"InstructionError": [5, {"Custom": 1}]},
        "InstructionError(5, Custom(1))",
        "TransactionErrorInstructionError((5, InstructionErrorCustom(1)))",
        "Program log: Error processing Instruction 5: custom program error: 0x1",
    ],
)
def test_parse_instruction_error_forms(error) -> None:
    assert parse_instruction_error(error) == (5, 1)


def test_late_instruction_failure_is_success_with_warning() -> None:
    outcome = classify_error({"InstructionError": [5, {"Custom": 1}]}, signature="sig")

    assert isinstance(outcome, SuccessWithWarning)
    assert outcome.signature == "sig"
    assert outcome.code == 1
    assert outcome.instruction_index == 5
    assert is_success(outcome)
    assert "warning" in describe(outcome)


def test_early_instruction_failure_is_a_failure() -> None:
    outcome = classify_error({"InstructionError": [2, {"Custom": 6001}]})

    assert isinstance(outcome, Failure)
    assert "6001" in outcome.reason
    assert not is_success(outcome)


def test_threshold_boundary() -> None:
    assert isinstance(classify_error({"InstructionError": [3, {"Custom": 1}]}), Failure)
    assert isinstance(classify_error({"InstructionError": [4, {"Custom": 1}]}), SuccessWithWarning)
    assert isinstance(classify_error({"InstructionError": [4, {"Custom": 1}]}, non_critical_index=5), Failure)


def test_unparseable_errors_are_failures() -> None:
    outcome = classify_error({"InstructionError": [6, "InvalidAccountData"]})
    assert isinstance(outcome, Failure)
    assert isinstance(classify_error("BlockhashNotFound"), Failure)


def test_describe_variants() -> None:
    assert describe(None) == "not attempted"
    assert describe(Success("abc")) == "success (abc)"
    assert describe(Failure("boom")) == "failed: boom"
