"""Step records describing each decision made by the heuristics and the optimizer.

Steps are immutable snapshots. Each one carries enough state (remaining supply and
demand, the allocations made so far, dual values, opportunity costs, the pivot
cycle) for an external viewer to rebuild the intermediate table without re-running
the solver.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Union

from .data import Allocation, Cell


@dataclass(frozen=True)
class PenaltyStep:
    """Row and column penalties computed by Vogel's approximation before an allocation.

    Attributes:
        description: Human-readable summary.
        row_penalties: Penalty per row (0 for exhausted rows).
        column_penalties: Penalty per column (0 for exhausted columns).
        selected_line: ``("row", i)`` or ``("column", j)`` chosen for the next allocation.
    """

    description: str
    row_penalties: tuple[float, ...]
    column_penalties: tuple[float, ...]
    selected_line: tuple[str, int] | None = None

    kind = "penalty"


@dataclass(frozen=True)
class AllocationStep:
    """One allocation, or one degeneracy fix when ``allocation`` is None.

    Attributes:
        description: Human-readable summary.
        allocation: The allocation just made (None for a degeneracy fix).
        remaining_supply: Remaining supply after the allocation.
        remaining_demand: Remaining demand after the allocation.
        all_allocations: Every allocation made so far, this one included.
    """

    description: str
    allocation: Allocation | None
    remaining_supply: tuple[float, ...]
    remaining_demand: tuple[float, ...]
    all_allocations: tuple[Allocation, ...]

    kind = "allocation"


@dataclass(frozen=True)
class UVStep:
    """One iteration of the MODI optimizer.

    Attributes:
        iteration: 1-based iteration number.
        status: 'pivot', 'optimal', 'no_cycle', 'degenerate', 'dual_failure' or
                'no_improvement'.
        description: Human-readable summary.
        u: Row duals (empty when they could not be computed).
        v: Column duals (empty when they could not be computed).
        opportunity_costs: ``cost - (u + v)`` for every cell.
        entering_cell: Cell selected to enter the basis.
        cycle: Closed pivot loop starting at the entering cell, signs alternating + / -.
        leaving_value: Units shifted around the cycle.
        total_cost: Cost after the pivot (None when no pivot was applied).
    """

    iteration: int
    status: str
    description: str
    u: tuple[float, ...] = ()
    v: tuple[float, ...] = ()
    opportunity_costs: tuple[tuple[float, ...], ...] = ()
    entering_cell: Cell | None = None
    cycle: tuple[Cell, ...] = ()
    leaving_value: float | None = None
    total_cost: float | None = None

    kind = "uv"


Step = Union[PenaltyStep, AllocationStep, UVStep]


class StepRecorder:
    """Append-only log of steps, handed out as an immutable tuple."""

    def __init__(self) -> None:
        self._steps: list[Step] = []

    def __len__(self) -> int:
        return len(self._steps)

    def record(self, step: Step) -> Step:
        self._steps.append(step)
        return step

    def allocation(
        self,
        description: str,
        allocation: Allocation | None,
        remaining_supply: Sequence[float],
        remaining_demand: Sequence[float],
        all_allocations: Sequence[Allocation],
    ) -> Step:
        # Copy the mutable working state so later updates never leak into the record.
        return self.record(
            AllocationStep(
                description=description,
                allocation=allocation,
                remaining_supply=tuple(float(value) for value in remaining_supply),
                remaining_demand=tuple(float(value) for value in remaining_demand),
                all_allocations=tuple(all_allocations),
            )
        )

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)
