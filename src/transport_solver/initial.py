"""Initial basic feasible solutions: North-West Corner, Least-Cost and Vogel's Approximation.

All three heuristics share the signature ``(problem, options=None) -> Solution`` and
work on local copies of the remaining supply and demand; the input problem is never
modified. Every allocation is recorded as an AllocationStep carrying the remaining
supply/demand after the allocation and the cumulative allocation list, so the
construction can be replayed step by step.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import numpy as np

from .data import Allocation, Method, Solution, SolverOptions, TransportationProblem
from .exceptions import SolverConfigurationError
from .steps import PenaltyStep, StepRecorder
from .utils import compute_total_cost

logger = logging.getLogger(__name__)


class _AllocationState:
    """Remaining supply/demand and the allocations made so far by one heuristic run."""

    def __init__(self, problem: TransportationProblem, tolerance: float) -> None:
        self.problem = problem
        self.tolerance = tolerance
        self.supply = [float(value) for value in problem.supply]
        self.demand = [float(value) for value in problem.demand]
        self.allocations: list[Allocation] = []
        self.recorder = StepRecorder()

    def has_supply(self, row: int) -> bool:
        return self.supply[row] > self.tolerance

    def has_demand(self, column: int) -> bool:
        return self.demand[column] > self.tolerance

    def open_rows(self) -> np.ndarray:
        return np.array([self.has_supply(i) for i in range(len(self.supply))], dtype=bool)

    def open_columns(self) -> np.ndarray:
        return np.array([self.has_demand(j) for j in range(len(self.demand))], dtype=bool)

    def exhausted(self) -> bool:
        return not self.open_rows().any() or not self.open_columns().any()

    def allocate(self, row: int, column: int, note: str = "") -> float:
        amount = min(self.supply[row], self.demand[column])
        self.supply[row] -= amount
        self.demand[column] -= amount
        # Snap residual noise so exhausted lines read as exactly zero in the trace.
        if self.supply[row] <= self.tolerance:
            self.supply[row] = 0.0
        if self.demand[column] <= self.tolerance:
            self.demand[column] = 0.0
        if amount < self.tolerance:
            return 0.0

        allocation = Allocation(row, column, amount)
        self.allocations.append(allocation)
        self.recorder.allocation(
            f"Allocate {amount:g} units from Source {row + 1} to Destination {column + 1}{note}",
            allocation,
            self.supply,
            self.demand,
            self.allocations,
        )
        return amount

    def solution(self, method: str) -> Solution:
        total_cost = compute_total_cost(self.allocations, self.problem)
        logger.debug(
            "Initial solution built",
            extra={
                "method": method,
                "allocations": len(self.allocations),
                "total_cost": total_cost,
            },
        )
        return Solution(
            allocations=tuple(self.allocations),
            total_cost=total_cost,
            steps=self.recorder.steps,
            method=method,
        )


def _tolerance(options: SolverOptions | None) -> float:
    return (options if options is not None else SolverOptions()).allocation_tolerance


def north_west_corner(
    problem: TransportationProblem, options: SolverOptions | None = None
) -> Solution:
    """Build an initial solution with the North-West Corner rule.

    Starts at the top-left cell and allocates as much as possible, moving down when a
    row's supply is exhausted and right when a column's demand is exhausted (both when
    both run out together). Costs are ignored, so the result is feasible but usually
    far from optimal.

    Examples:
        >>> from transport_solver import build_problem
        >>> problem = build_problem([20, 30, 25], [10, 25, 40],
        ...                         [[4, 6, 8], [5, 4, 3], [6, 5, 4]])
        >>> north_west_corner(problem).allocations[0]
        Allocation(source=0, destination=0, value=10.0, epsilon=False)
    """
    state = _AllocationState(problem, _tolerance(options))
    rows, columns = problem.shape
    i = j = 0
    while i < rows and j < columns:
        if not state.has_supply(i):
            i += 1
            continue
        if not state.has_demand(j):
            j += 1
            continue
        state.allocate(i, j)
        supply_done = not state.has_supply(i)
        demand_done = not state.has_demand(j)
        if supply_done:
            i += 1
        if demand_done:
            j += 1
    return state.solution("nwcm")


def least_cost(problem: TransportationProblem, options: SolverOptions | None = None) -> Solution:
    """Build an initial solution with the Least-Cost method.

    Repeatedly allocates to the cheapest cell whose row and column both have capacity
    left. Ties go to the first such cell in row-major order.
    """
    state = _AllocationState(problem, _tolerance(options))
    costs = problem.cost_matrix
    columns = problem.shape[1]

    while not state.exhausted():
        eligible = np.outer(state.open_rows(), state.open_columns())
        masked = np.where(eligible, costs, np.inf)
        flat_index = int(np.argmin(masked))
        if not np.isfinite(masked.flat[flat_index]):
            logger.warning("Least-cost method found no eligible cell with capacity left")
            break
        i, j = divmod(flat_index, columns)
        state.allocate(i, j, f" (minimum cost: {costs[i, j]:g})")
    return state.solution("lcm")


def _line_penalty(line_costs: np.ndarray) -> float:
    # Difference between the two cheapest available cells; a lone cell's penalty is its cost.
    if line_costs.size == 0:
        return 0.0
    if line_costs.size == 1:
        return float(line_costs[0])
    cheapest = np.partition(line_costs, 1)[:2]
    return float(cheapest[1] - cheapest[0])


def vogel_approximation(
    problem: TransportationProblem, options: SolverOptions | None = None
) -> Solution:
    """Build an initial solution with Vogel's Approximation Method (VAM).

    Each round computes a penalty for every row and column that still has capacity
    (the gap between its two cheapest available cells), picks the line with the
    largest penalty (rows win ties, then the lower index) and allocates to the
    cheapest available cell on that line. A PenaltyStep precedes every
    AllocationStep in the trace.
    """
    state = _AllocationState(problem, _tolerance(options))
    costs = problem.cost_matrix
    rows, columns = problem.shape

    while not state.exhausted():
        open_rows = state.open_rows()
        open_columns = state.open_columns()
        row_penalties = [
            _line_penalty(costs[i, open_columns]) if open_rows[i] else 0.0 for i in range(rows)
        ]
        column_penalties = [
            _line_penalty(costs[open_rows, j]) if open_columns[j] else 0.0
            for j in range(columns)
        ]

        candidate_rows = [i for i in range(rows) if open_rows[i]]
        candidate_columns = [j for j in range(columns) if open_columns[j]]
        best_row = max(candidate_rows, key=lambda i: row_penalties[i])
        best_column = max(candidate_columns, key=lambda j: column_penalties[j])

        if row_penalties[best_row] >= column_penalties[best_column]:
            i = best_row
            j = int(np.argmin(np.where(open_columns, costs[i], np.inf)))
            selected = ("row", i)
            summary = f"Row {i + 1} has the largest penalty ({row_penalties[i]:g})"
        else:
            j = best_column
            i = int(np.argmin(np.where(open_rows, costs[:, j], np.inf)))
            selected = ("column", j)
            summary = f"Column {j + 1} has the largest penalty ({column_penalties[j]:g})"

        state.recorder.record(
            PenaltyStep(
                description=f"Calculate row and column penalties. {summary}",
                row_penalties=tuple(row_penalties),
                column_penalties=tuple(column_penalties),
                selected_line=selected,
            )
        )
        state.allocate(i, j, f" (cost: {costs[i, j]:g})")
    return state.solution("vam")


INITIAL_METHODS: dict[str, Callable[[TransportationProblem, SolverOptions | None], Solution]] = {
    "nwcm": north_west_corner,
    "lcm": least_cost,
    "vam": vogel_approximation,
}


def build_initial_solution(
    problem: TransportationProblem,
    method: Method = "vam",
    options: SolverOptions | None = None,
) -> Solution:
    """Dispatch to the heuristic named by ``method`` ('nwcm', 'lcm' or 'vam').

    Raises:
        SolverConfigurationError: If ``method`` is not a known heuristic.
    """
    try:
        heuristic = INITIAL_METHODS[method]
    except KeyError:
        raise SolverConfigurationError(
            f"Unknown method '{method}'. Must be one of: {', '.join(sorted(INITIAL_METHODS))}."
        ) from None
    return heuristic(problem, options)
