"""Supply/demand balancing for transportation problems.

The heuristics and the optimizer assume total supply equals total demand. When a
problem is unbalanced, a zero-cost dummy row (extra supply) or dummy column (extra
demand) absorbs the difference. Flow on dummy cells means unmet demand or unshipped
supply respectively.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .data import ALLOCATION_TOLERANCE, TransportationProblem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceResult:
    """Result of balancing a transportation problem.

    Attributes:
        problem: The balanced problem (the original instance when already balanced).
        original_shape: ``(rows, columns)`` of the problem before balancing.
        dummy_row: Index of the added dummy supply row, or None.
        dummy_column: Index of the added dummy demand column, or None.
    """

    problem: TransportationProblem
    original_shape: tuple[int, int]
    dummy_row: int | None = None
    dummy_column: int | None = None

    @property
    def was_balanced(self) -> bool:
        return self.dummy_row is None and self.dummy_column is None

    def is_dummy_cell(self, source: int, destination: int) -> bool:
        return source == self.dummy_row or destination == self.dummy_column


def is_balanced(problem: TransportationProblem, tolerance: float = ALLOCATION_TOLERANCE) -> bool:
    return problem.is_balanced(tolerance)


def balance_problem(
    problem: TransportationProblem, tolerance: float = ALLOCATION_TOLERANCE
) -> BalanceResult:
    """Return a balanced version of ``problem`` without modifying it.

    Args:
        problem: Problem to balance.
        tolerance: Supply/demand differences up to this magnitude count as balanced.

    Returns:
        BalanceResult with the balanced problem and the dummy line indices.

    Examples:
        >>> from transport_solver import build_problem
        >>> problem = build_problem([30, 20], [10, 25], [[1, 2], [3, 4]])
        >>> result = balance_problem(problem)
        >>> result.problem.demand
        (10.0, 25.0, 15.0)
        >>> result.dummy_column
        2
    """
    rows, columns = problem.shape
    total_supply = problem.total_supply
    total_demand = problem.total_demand
    gap = total_demand - total_supply

    if abs(gap) <= tolerance:
        return BalanceResult(problem=problem, original_shape=(rows, columns))

    if gap > 0:
        balanced = TransportationProblem(
            supply=problem.supply + (gap,),
            demand=problem.demand,
            costs=problem.costs + ((0.0,) * columns,),
        )
        logger.debug(
            "Added dummy supply row",
            extra={"dummy_row": rows, "dummy_supply": gap},
        )
        return BalanceResult(problem=balanced, original_shape=(rows, columns), dummy_row=rows)

    balanced = TransportationProblem(
        supply=problem.supply,
        demand=problem.demand + (-gap,),
        costs=tuple(row + (0.0,) for row in problem.costs),
    )
    logger.debug(
        "Added dummy demand column",
        extra={"dummy_column": columns, "dummy_demand": -gap},
    )
    return BalanceResult(
        problem=balanced, original_shape=(rows, columns), dummy_column=columns
    )
