import dataclasses
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver.data import Allocation  # noqa: E402
from transport_solver.steps import (  # noqa: E402
    AllocationStep,
    PenaltyStep,
    StepRecorder,
    UVStep,
)


def test_recorder_copies_working_state():
    recorder = StepRecorder()
    supply = [10.0, 5.0]
    demand = [15.0]
    allocations = [Allocation(0, 0, 10.0)]

    step = recorder.allocation("first", allocations[0], supply, demand, allocations)
    supply[0] = 0.0
    allocations.append(Allocation(1, 0, 5.0))

    assert step.remaining_supply == (10.0, 5.0)
    assert step.all_allocations == (Allocation(0, 0, 10.0),)
    assert len(recorder) == 1


def test_recorder_hands_out_immutable_tuple():
    recorder = StepRecorder()
    recorder.record(PenaltyStep("p", (1.0,), (2.0,), ("column", 0)))
    recorder.record(UVStep(iteration=1, status="optimal", description="done"))

    steps = recorder.steps

    assert isinstance(steps, tuple)
    assert [step.kind for step in steps] == ["penalty", "uv"]


def test_steps_are_frozen():
    step = AllocationStep("fix", None, (0.0,), (0.0,), ())

    with pytest.raises(dataclasses.FrozenInstanceError):
        step.description = "changed"  # type: ignore[misc]
