"""Core data structures for transportation problems and their solutions."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import numpy as np

from .exceptions import InvalidProblemError, SolverConfigurationError

if TYPE_CHECKING:
    from .balancing import BalanceResult
    from .steps import Step

# Perturbation assigned to placeholder allocations that keep the basis at m+n-1 cells.
# Leaving values below this magnitude are treated as degenerate pivots.
EPSILON = 1e-6
# Allocations smaller than this are floating-point noise and are never recorded.
ALLOCATION_TOLERANCE = 1e-9
# Opportunity costs must fall below this value before a cell may enter the basis.
OPTIMALITY_THRESHOLD = -1e-7
# A pivot is accepted only if it lowers the cost by more than this amount.
COST_TOLERANCE = 1e-9
OPPORTUNITY_COST_DECIMALS = 10
# Finite stand-in for "no route" so heuristics never special-case missing links.
SENTINEL_COST = 999.0
DEFAULT_MAX_ITERATIONS = 20

Method = Literal["nwcm", "lcm", "vam"]
Cell = tuple[int, int]


@dataclass(frozen=True)
class TransportationProblem:
    """A transportation problem: ship supply from rows to demand columns at minimum cost.

    Attributes:
        supply: Units available at each source (one entry per cost-matrix row).
        demand: Units required at each destination (one entry per cost-matrix column).
        costs: Per-unit shipping cost, ``costs[i][j]`` from source i to destination j.

    Examples:
        >>> problem = TransportationProblem(
        ...     supply=(20.0, 30.0),
        ...     demand=(25.0, 25.0),
        ...     costs=((4.0, 6.0), (5.0, 3.0)),
        ... )
        >>> problem.shape
        (2, 2)
        >>> problem.is_balanced()
        True

    Raises:
        InvalidProblemError: If the cost matrix does not match the supply/demand lengths,
            or if any value is negative or not finite.

    Note:
        Instances are immutable. The balancer and the transshipment reducer derive new
        problems instead of modifying an existing one.
    """

    supply: tuple[float, ...]
    demand: tuple[float, ...]
    costs: tuple[tuple[float, ...], ...]

    def __post_init__(self) -> None:
        if not self.supply:
            raise InvalidProblemError("Problem must have at least one supply row.")
        if not self.demand:
            raise InvalidProblemError("Problem must have at least one demand column.")
        if len(self.costs) != len(self.supply):
            raise InvalidProblemError(
                f"Cost matrix has {len(self.costs)} rows but supply has {len(self.supply)} "
                f"entries. The cost matrix needs one row per supply node."
            )
        for i, row in enumerate(self.costs):
            if len(row) != len(self.demand):
                raise InvalidProblemError(
                    f"Cost matrix row {i} has {len(row)} entries but demand has "
                    f"{len(self.demand)} entries. Each row needs one cost per demand node."
                )
        _check_values("supply", self.supply)
        _check_values("demand", self.demand)
        for i, row in enumerate(self.costs):
            _check_values(f"cost row {i}", row)

    @property
    def shape(self) -> tuple[int, int]:
        return len(self.supply), len(self.demand)

    @property
    def total_supply(self) -> float:
        return math.fsum(self.supply)

    @property
    def total_demand(self) -> float:
        return math.fsum(self.demand)

    @property
    def cost_matrix(self) -> np.ndarray:
        """Return the costs as a read-only ``float`` array of shape ``(m, n)``."""
        matrix = np.array(self.costs, dtype=float)
        matrix.flags.writeable = False
        return matrix

    def cost(self, source: int, destination: int) -> float:
        return self.costs[source][destination]

    def is_balanced(self, tolerance: float = ALLOCATION_TOLERANCE) -> bool:
        return abs(self.total_supply - self.total_demand) <= tolerance


def _check_values(label: str, values: Sequence[float]) -> None:
    for idx, value in enumerate(values):
        if not math.isfinite(value):
            raise InvalidProblemError(f"{label} entry {idx} is not a finite number: {value!r}")
        if value < 0:
            raise InvalidProblemError(
                f"{label} entry {idx} is negative ({value}). Supply, demand and cost values "
                f"must be >= 0."
            )


@dataclass(frozen=True)
class Allocation:
    """Flow assigned to one source -> destination cell.

    Attributes:
        source: Row index in the (balanced) cost matrix.
        destination: Column index in the (balanced) cost matrix.
        value: Units shipped. Positive in the canonical representation.
        epsilon: True for a degenerate placeholder. Placeholders carry ``EPSILON`` units
                 so the basis keeps m+n-1 cells, but they are not real flow.
    """

    source: int
    destination: int
    value: float
    epsilon: bool = False

    @property
    def cell(self) -> Cell:
        return self.source, self.destination

    @property
    def flow(self) -> float:
        """Units reported to callers: zero for epsilon placeholders."""
        return 0.0 if self.epsilon else self.value


@dataclass(frozen=True)
class Solution:
    """A basic feasible solution produced by a heuristic or by the MODI optimizer.

    Attributes:
        allocations: Basic cells, in the order they were allocated (placeholders included).
        total_cost: Sum of ``cost * value`` over real allocations (placeholders count as 0).
        steps: Replayable trace of the decisions that produced this solution.
        method: Name of the producing method ('nwcm', 'lcm', 'vam' or 'modi').
        is_optimal: Advisory flag set by the optimizer. It is also set when the
                    optimizer stopped early and returned its best solution so far.
        iterations: MODI iterations performed (0 for heuristics).
    """

    allocations: tuple[Allocation, ...]
    total_cost: float
    steps: tuple[Step, ...] = ()
    method: str | None = None
    is_optimal: bool = False
    iterations: int = 0

    @property
    def basic_cells(self) -> list[Cell]:
        return [allocation.cell for allocation in self.allocations]

    def flows(self) -> dict[Cell, float]:
        """Return real (non-placeholder) flow per cell."""
        result: dict[Cell, float] = {}
        for allocation in self.allocations:
            if allocation.epsilon:
                continue
            result[allocation.cell] = result.get(allocation.cell, 0.0) + allocation.value
        return result


@dataclass(frozen=True)
class TransportResult:
    """Outcome of :func:`transport_solver.solve_transportation`.

    Attributes:
        problem: The balanced problem the solver worked on. Allocations index into it.
        balance: Balancing metadata (dummy row / dummy column indices, if any).
        initial: Basic feasible solution from the selected heuristic.
        optimized: Result of the MODI optimizer, or None when optimization was not requested.
    """

    problem: TransportationProblem
    balance: BalanceResult
    initial: Solution
    optimized: Solution | None = None

    @property
    def solution(self) -> Solution:
        return self.optimized if self.optimized is not None else self.initial


@dataclass(frozen=True)
class ProgressInfo:
    """Progress information provided once per optimizer iteration.

    Attributes:
        iteration: Current iteration number (1-based).
        max_iterations: Iteration cap for this run.
        objective_estimate: Cost of the current solution, placeholders included.
        elapsed_time: Elapsed time in seconds since the optimizer started.
    """

    iteration: int
    max_iterations: int
    objective_estimate: float
    elapsed_time: float


# Type alias for progress callback function
ProgressCallback = Callable[[ProgressInfo], None]


@dataclass
class SolverOptions:
    """Configuration options for the heuristics and the MODI optimizer.

    Attributes:
        max_iterations: Safety cap on MODI iterations (default: 20). Problems handled by
                        this library are small, so the cap doubles as the timeout.
        epsilon: Value given to degenerate placeholder allocations (default: 1e-6). Leaving
                 values smaller than this are treated as degenerate pivots and skipped.
        allocation_tolerance: Allocations below this are ignored as noise (default: 1e-9).
        optimality_threshold: Opportunity cost a cell must fall below to enter the basis
                              (default: -1e-7).
        cost_tolerance: Minimum cost decrease for a pivot to be accepted (default: 1e-9).

    Examples:
        >>> options = SolverOptions()
        >>> options = SolverOptions(max_iterations=50)
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    epsilon: float = EPSILON
    allocation_tolerance: float = ALLOCATION_TOLERANCE
    optimality_threshold: float = OPTIMALITY_THRESHOLD
    cost_tolerance: float = COST_TOLERANCE

    def __post_init__(self) -> None:
        if self.max_iterations <= 0:
            raise SolverConfigurationError(
                f"max_iterations must be positive, got {self.max_iterations}."
            )
        if self.epsilon <= 0:
            raise SolverConfigurationError(f"epsilon must be positive, got {self.epsilon}.")
        if self.allocation_tolerance <= 0 or self.allocation_tolerance >= self.epsilon:
            raise SolverConfigurationError(
                f"allocation_tolerance must be positive and smaller than epsilon, got "
                f"{self.allocation_tolerance} (epsilon={self.epsilon})."
            )
        if self.optimality_threshold >= 0:
            raise SolverConfigurationError(
                f"optimality_threshold must be negative, got {self.optimality_threshold}."
            )
        if self.cost_tolerance < 0:
            raise SolverConfigurationError(
                f"cost_tolerance must be >= 0, got {self.cost_tolerance}."
            )


def build_problem(
    supply: Sequence[float],
    demand: Sequence[float],
    costs: Sequence[Sequence[float]],
) -> TransportationProblem:
    """Factory helper used by the IO layer and the solver to assemble a problem."""
    try:
        supply_values = tuple(float(value) for value in supply)
        demand_values = tuple(float(value) for value in demand)
        cost_rows = tuple(tuple(float(value) for value in row) for row in costs)
    except (TypeError, ValueError) as exc:
        raise InvalidProblemError(f"Problem values must be numeric: {exc}") from exc
    return TransportationProblem(supply=supply_values, demand=demand_values, costs=cost_rows)
