"""MODI (UV) optimality improvement for transportation problems.

Starting from a basic feasible solution, each iteration:

1. tops up a degenerate basis with epsilon placeholders (and moves on),
2. computes duals ``u`` / ``v`` with ``cost = u + v`` on every basic cell,
3. evaluates opportunity costs ``cost - (u + v)`` for every cell,
4. picks the most negative non-basic cell as the entering cell,
5. finds the closed pivot loop through it,
6. shifts the smallest "minus" allocation around the loop.

The loop stops when no opportunity cost is negative, when a pivot would not lower
the cost, when the duals cannot be determined, or at the iteration cap. In every
case the best solution seen so far is returned, flagged as optimal; the flag is
advisory.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence

import numpy as np

from .basis import BasisGraph, find_cycle, repair_degeneracy
from .data import (
    OPPORTUNITY_COST_DECIMALS,
    OPTIMALITY_THRESHOLD,
    Allocation,
    Cell,
    ProgressCallback,
    ProgressInfo,
    Solution,
    SolverOptions,
    TransportationProblem,
)
from .exceptions import InvalidProblemError
from .steps import StepRecorder, UVStep
from .utils import compute_total_cost


def _propagate_duals(
    cells: Sequence[Cell], problem: TransportationProblem, anchor: int
) -> tuple[list[float | None], list[float | None]]:
    rows, columns = problem.shape
    u: list[float | None] = [None] * rows
    v: list[float | None] = [None] * columns
    u[anchor] = 0.0
    changed = True
    while changed:
        changed = False
        for i, j in cells:
            u_i = u[i]
            v_j = v[j]
            if u_i is not None and v_j is None:
                v[j] = problem.cost(i, j) - u_i
                changed = True
            elif u_i is None and v_j is not None:
                u[i] = problem.cost(i, j) - v_j
                changed = True
    return u, v


def compute_duals(
    allocations: Iterable[Allocation], problem: TransportationProblem
) -> tuple[list[float], list[float]] | None:
    """Solve ``cost[i][j] = u[i] + v[j]`` over the basic cells.

    ``u[0]`` is anchored at zero and values are propagated across basic cells. If
    some duals stay undetermined (the basis graph is disconnected), the first
    undetermined row is used as the anchor instead.

    Returns:
        ``(u, v)``, or None if the duals cannot all be determined.
    """
    cells = [allocation.cell for allocation in allocations]
    u, v = _propagate_duals(cells, problem, anchor=0)
    duals = _determined(u, v)
    if duals is not None:
        return duals

    undetermined = [i for i, value in enumerate(u) if value is None]
    if undetermined:
        u, v = _propagate_duals(cells, problem, anchor=undetermined[0])
        return _determined(u, v)
    return None


def _determined(
    u: Sequence[float | None], v: Sequence[float | None]
) -> tuple[list[float], list[float]] | None:
    if any(value is None for value in u) or any(value is None for value in v):
        return None
    return [float(value) for value in u], [float(value) for value in v]  # type: ignore[arg-type]


def compute_opportunity_costs(
    u: Sequence[float], v: Sequence[float], problem: TransportationProblem
) -> np.ndarray:
    """Return ``cost - (u + v)`` for every cell, rounded to suppress floating noise."""
    u_column = np.asarray(u, dtype=float)[:, None]
    v_row = np.asarray(v, dtype=float)[None, :]
    reduced = problem.cost_matrix - (u_column + v_row)
    return np.round(reduced, OPPORTUNITY_COST_DECIMALS)


def select_entering_cell(
    opportunity_costs: np.ndarray,
    basic_cells: Iterable[Cell],
    threshold: float = OPTIMALITY_THRESHOLD,
    exclude: Iterable[Cell] = (),
) -> Cell | None:
    """Pick the non-basic cell with the most negative opportunity cost.

    Only cells strictly below ``threshold`` qualify; ties go to the first cell in
    row-major order. Returns None when no cell qualifies (the basis is optimal).
    """
    masked = np.array(opportunity_costs, dtype=float, copy=True)
    for i, j in basic_cells:
        masked[i, j] = np.inf
    for i, j in exclude:
        masked[i, j] = np.inf
    flat_index = int(np.argmin(masked))
    i, j = divmod(flat_index, masked.shape[1])
    if masked[i, j] < threshold:
        return i, j
    return None


def leaving_value(cycle: Sequence[Cell], allocations: Iterable[Allocation]) -> float:
    """Smallest allocation among the cycle's "minus" cells (odd positions)."""
    values = {allocation.cell: allocation.value for allocation in allocations}
    minus = [values[cell] for cell in cycle[1::2] if cell in values]
    return min(minus) if minus else 0.0


def apply_pivot(
    allocations: Sequence[Allocation],
    cycle: Sequence[Cell],
    theta: float,
    options: SolverOptions | None = None,
) -> list[Allocation]:
    """Shift ``theta`` units around ``cycle`` and return the new allocation list.

    Cells at even positions gain ``theta``, cells at odd positions lose it, and cells
    that drop below the allocation tolerance leave the basis. A placeholder that
    gains real flow becomes a real allocation of exactly ``theta``.

    When ``theta`` is set by an epsilon placeholder, no real flow moves: the
    placeholder leaves the basis and the entering cell becomes the new placeholder.

    The input list is not modified.
    """
    options = options if options is not None else SolverOptions()
    by_cell: dict[Cell, Allocation] = {allocation.cell: allocation for allocation in allocations}
    entering = cycle[0]

    if theta <= options.epsilon + options.allocation_tolerance:
        leaving = next(
            (
                cell
                for cell in cycle[1::2]
                if cell in by_cell
                and by_cell[cell].epsilon
                and by_cell[cell].value <= theta + options.allocation_tolerance
            ),
            None,
        )
        if leaving is not None:
            del by_cell[leaving]
            by_cell[entering] = Allocation(entering[0], entering[1], options.epsilon, epsilon=True)
            return list(by_cell.values())

    for position, cell in enumerate(cycle):
        current = by_cell.get(cell)
        if position % 2 == 0:
            base = 0.0 if current is None or current.epsilon else current.value
            value = base + theta
        else:
            value = (current.value if current is not None else 0.0) - theta
        if value < options.allocation_tolerance:
            by_cell.pop(cell, None)
        else:
            by_cell[cell] = Allocation(cell[0], cell[1], value)
    return list(by_cell.values())


def _perturbed_cost(allocations: Iterable[Allocation], problem: TransportationProblem) -> float:
    return compute_total_cost(allocations, problem, include_epsilon=True)


def _as_tuple(matrix: np.ndarray) -> tuple[tuple[float, ...], ...]:
    return tuple(tuple(float(value) for value in row) for row in matrix)


def _cell_label(cell: Cell) -> str:
    return f"(S{cell[0] + 1},D{cell[1] + 1})"


class ModiOptimizer:
    """MODI / UV optimizer for a balanced transportation problem.

    Attributes:
        problem: Problem whose cost matrix the allocations index into.
        options: Iteration cap and numeric tolerances.

    Examples:
        >>> from transport_solver import build_problem, north_west_corner
        >>> problem = build_problem([300, 400, 500], [250, 350, 400, 200],
        ...                         [[3, 1, 7, 4], [2, 6, 5, 9], [8, 3, 3, 2]])
        >>> initial = north_west_corner(problem)
        >>> ModiOptimizer(problem).optimize(initial).total_cost
        2850.0

    Note:
        Instances keep no state between calls to optimize(); the step trace is
        returned inside the Solution.
    """

    def __init__(self, problem: TransportationProblem, options: SolverOptions | None = None):
        self.problem = problem
        self.options = options if options is not None else SolverOptions()
        self.logger = logging.getLogger(__name__)
        rows, columns = problem.shape
        self.required_cells = rows + columns - 1

    def _check_allocations(self, allocations: Sequence[Allocation]) -> None:
        rows, columns = self.problem.shape
        for allocation in allocations:
            if not (0 <= allocation.source < rows and 0 <= allocation.destination < columns):
                raise InvalidProblemError(
                    f"Allocation ({allocation.source}, {allocation.destination}) is outside the "
                    f"{rows}x{columns} cost matrix."
                )

    def _find_pivot(
        self,
        opportunity_costs: np.ndarray,
        allocations: Sequence[Allocation],
        excluded: set[Cell],
    ) -> tuple[Cell | None, list[Cell] | None, list[Cell]]:
        # Walk candidates from most to least negative until one has a closed loop.
        basic = [allocation.cell for allocation in allocations]
        graph = BasisGraph(self.problem.shape[0], self.problem.shape[1], basic)
        without_cycle: list[Cell] = []
        while True:
            entering = select_entering_cell(
                opportunity_costs,
                basic,
                self.options.optimality_threshold,
                exclude=excluded.union(without_cycle),
            )
            if entering is None:
                return None, None, without_cycle
            cycle = find_cycle(entering, graph)
            if cycle is not None:
                return entering, cycle, without_cycle
            self.logger.debug("No pivot cycle for entering cell", extra={"cell": entering})
            without_cycle.append(entering)

    def optimize(
        self,
        initial: Solution | Sequence[Allocation],
        progress_callback: ProgressCallback | None = None,
    ) -> Solution:
        """Improve ``initial`` until no negative opportunity cost remains.

        Args:
            initial: Basic feasible solution (or its allocations) for ``self.problem``.
            progress_callback: Optional callable receiving a ProgressInfo per iteration.

        Returns:
            The best solution found, with the iteration trace as UVStep / AllocationStep
            records. ``is_optimal`` is always True and should be read as advisory.

        Raises:
            InvalidProblemError: If an allocation lies outside the cost matrix.
        """
        allocations = list(initial.allocations if isinstance(initial, Solution) else initial)
        self._check_allocations(allocations)

        problem = self.problem
        options = self.options
        recorder = StepRecorder()
        start_time = time.time()

        current_cost = _perturbed_cost(allocations, problem)
        best = list(allocations)
        best_cost = compute_total_cost(allocations, problem)
        excluded: set[Cell] = set()
        repair_exhausted = False
        iteration = 0
        pivots = 0
        outcome = "iteration_limit"

        self.logger.info(
            "Starting MODI optimization",
            extra={
                "rows": problem.shape[0],
                "columns": problem.shape[1],
                "initial_cost": best_cost,
                "max_iterations": options.max_iterations,
            },
        )

        while iteration < options.max_iterations:
            iteration += 1
            if progress_callback is not None:
                progress_callback(
                    ProgressInfo(
                        iteration=iteration,
                        max_iterations=options.max_iterations,
                        objective_estimate=current_cost,
                        elapsed_time=time.time() - start_time,
                    )
                )

            basic_count = len({allocation.cell for allocation in allocations})
            if basic_count < self.required_cells and not repair_exhausted:
                allocations, added = repair_degeneracy(allocations, problem, options.epsilon)
                if not added:
                    repair_exhausted = True
                cells = ", ".join(_cell_label(allocation.cell) for allocation in added) or "none"
                recorder.allocation(
                    f"Degenerate fix: ε allocated at {cells}",
                    None,
                    problem.supply,
                    problem.demand,
                    allocations,
                )
                current_cost = _perturbed_cost(allocations, problem)
                excluded.clear()
                best = list(allocations)
                continue

            duals = compute_duals(allocations, problem)
            if duals is None:
                recorder.record(
                    UVStep(
                        iteration=iteration,
                        status="dual_failure",
                        description=(
                            f"Iteration {iteration}: Failed to calculate U and V values. "
                            f"The basis is degenerate."
                        ),
                    )
                )
                self.logger.warning(
                    "Could not determine dual values; returning best solution so far",
                    extra={"iteration": iteration, "basic_cells": len(allocations)},
                )
                outcome = "dual_failure"
                break

            u, v = duals
            opportunity_costs = compute_opportunity_costs(u, v, problem)
            u_values = tuple(u)
            v_values = tuple(v)
            opportunity_rows = _as_tuple(opportunity_costs)

            entering, cycle, without_cycle = self._find_pivot(
                opportunity_costs, allocations, excluded
            )
            if entering is None or cycle is None:
                if without_cycle:
                    status = "no_cycle"
                    description = (
                        f"Iteration {iteration}: No valid cycle for entering cell(s) "
                        f"{', '.join(_cell_label(cell) for cell in without_cycle)}. "
                        f"Treating the solution as optimal."
                    )
                else:
                    status = "optimal"
                    description = (
                        f"Iteration {iteration}: Solution is optimal. "
                        f"No negative opportunity costs found."
                    )
                recorder.record(
                    UVStep(
                        iteration=iteration,
                        status=status,
                        description=description,
                        u=u_values,
                        v=v_values,
                        opportunity_costs=opportunity_rows,
                        entering_cell=without_cycle[0] if without_cycle else None,
                    )
                )
                outcome = status
                break

            entering_cost = float(opportunity_costs[entering])
            theta = leaving_value(cycle, allocations)
            if theta < options.epsilon:
                recorder.record(
                    UVStep(
                        iteration=iteration,
                        status="degenerate",
                        description=(
                            f"Iteration {iteration}: Leaving value is too small for entering cell "
                            f"{_cell_label(entering)}. Potential degeneracy. Skipping."
                        ),
                        u=u_values,
                        v=v_values,
                        opportunity_costs=opportunity_rows,
                        entering_cell=entering,
                        cycle=tuple(cycle),
                        leaving_value=theta,
                    )
                )
                self.logger.debug(
                    "Skipped degenerate pivot",
                    extra={"iteration": iteration, "entering": entering, "theta": theta},
                )
                excluded.add(entering)
                continue

            # Cost change of the pivot, placeholders counted at their perturbed value.
            delta = theta * entering_cost
            if delta >= -options.cost_tolerance:
                recorder.record(
                    UVStep(
                        iteration=iteration,
                        status="no_improvement",
                        description=(
                            f"Iteration {iteration}: No further improvement possible. "
                            f"Current solution is optimal."
                        ),
                        u=u_values,
                        v=v_values,
                        opportunity_costs=opportunity_rows,
                        entering_cell=entering,
                        cycle=tuple(cycle),
                        leaving_value=theta,
                    )
                )
                outcome = "no_improvement"
                break

            allocations = apply_pivot(allocations, cycle, theta, options)
            current_cost += delta
            pivots += 1
            excluded.clear()
            real_cost = compute_total_cost(allocations, problem)
            recorder.record(
                UVStep(
                    iteration=iteration,
                    status="pivot",
                    description=(
                        f"Iteration {iteration}: Entering cell {_cell_label(entering)} with "
                        f"opportunity cost {entering_cost:.2f}, shifting {theta:g} units"
                    ),
                    u=u_values,
                    v=v_values,
                    opportunity_costs=opportunity_rows,
                    entering_cell=entering,
                    cycle=tuple(cycle),
                    leaving_value=theta,
                    total_cost=real_cost,
                )
            )
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(
                    "Pivot applied",
                    extra={
                        "iteration": iteration,
                        "entering": entering,
                        "opportunity_cost": entering_cost,
                        "theta": theta,
                        "cycle": cycle,
                        "total_cost": real_cost,
                    },
                )
            if real_cost <= best_cost + options.cost_tolerance:
                best = list(allocations)
                best_cost = min(best_cost, real_cost)

        if outcome == "iteration_limit":
            self.logger.warning(
                "Iteration limit reached; returning best solution so far",
                extra={"iterations": iteration, "max_iterations": options.max_iterations},
            )

        total_cost = compute_total_cost(best, problem)
        self.logger.info(
            "MODI optimization finished",
            extra={
                "outcome": outcome,
                "iterations": iteration,
                "pivots": pivots,
                "total_cost": total_cost,
                "elapsed_ms": (time.time() - start_time) * 1000,
            },
        )
        return Solution(
            allocations=tuple(best),
            total_cost=total_cost,
            steps=recorder.steps,
            method="modi",
            is_optimal=True,
            iterations=iteration,
        )


def optimize(
    problem: TransportationProblem,
    initial: Solution | Sequence[Allocation],
    options: SolverOptions | None = None,
    progress_callback: ProgressCallback | None = None,
) -> Solution:
    """Run the MODI optimizer on ``initial`` (see :class:`ModiOptimizer`)."""
    # Instantiate a fresh optimizer each call to avoid cross-run state sharing.
    return ModiOptimizer(problem, options=options).optimize(
        initial, progress_callback=progress_callback
    )


def is_optimal(
    problem: TransportationProblem,
    allocations: Iterable[Allocation],
    threshold: float = OPTIMALITY_THRESHOLD,
) -> bool:
    """Check directly that no non-basic cell has a negative opportunity cost.

    Use this when a verified answer is needed; the optimizer's ``is_optimal`` flag is
    advisory only. Returns False when the duals cannot be computed.
    """
    allocations = list(allocations)
    duals = compute_duals(allocations, problem)
    if duals is None:
        return False
    opportunity_costs = compute_opportunity_costs(duals[0], duals[1], problem)
    return select_entering_cell(opportunity_costs, [a.cell for a in allocations], threshold) is None
