"""Utility functions for analyzing and validating transportation solutions."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from .data import Allocation, Solution, TransportationProblem


@dataclass
class ValidationResult:
    """Results from validating a set of allocations against a problem.

    Attributes:
        is_valid: True if no row or column exceeds its capacity and no allocation is
                  negative or out of range.
        is_complete: True if every unit of supply and demand is allocated.
        errors: List of validation error messages (empty if valid).
        row_totals: Units shipped from each source.
        column_totals: Units received by each destination.
    """

    is_valid: bool
    is_complete: bool
    errors: list[str]
    row_totals: list[float]
    column_totals: list[float]


def compute_total_cost(
    allocations: Iterable[Allocation],
    problem: TransportationProblem,
    include_epsilon: bool = False,
) -> float:
    """Sum ``cost * value`` over allocations.

    Epsilon placeholders are skipped unless ``include_epsilon`` is set. The optimizer
    compares perturbed costs (placeholders included); callers see the real total.
    """
    return math.fsum(
        problem.cost(allocation.source, allocation.destination) * allocation.value
        for allocation in allocations
        if include_epsilon or not allocation.epsilon
    )


def allocation_matrix(allocations: Iterable[Allocation], shape: tuple[int, int]) -> np.ndarray:
    """Return real flow as a dense ``(rows, columns)`` array (placeholders are zero)."""
    matrix = np.zeros(shape, dtype=float)
    for allocation in allocations:
        matrix[allocation.source, allocation.destination] += allocation.flow
    return matrix


def validate_solution(
    problem: TransportationProblem,
    solution: Solution | Iterable[Allocation],
    tolerance: float = 1e-6,
) -> ValidationResult:
    """Validate allocations against the supply and demand of ``problem``.

    Checks:
    - Every allocation references an existing cell and is non-negative
    - Row totals do not exceed supply, column totals do not exceed demand
    - Completeness: totals match supply and demand exactly (balanced problems)

    Args:
        problem: Problem the allocations index into.
        solution: A Solution or a plain iterable of allocations.
        tolerance: Numerical tolerance for violations (default: 1e-6).

    Returns:
        ValidationResult with row/column totals and any violations.
    """
    allocations = solution.allocations if isinstance(solution, Solution) else tuple(solution)
    rows, columns = problem.shape
    errors: list[str] = []

    for allocation in allocations:
        if not (0 <= allocation.source < rows and 0 <= allocation.destination < columns):
            errors.append(
                f"Allocation ({allocation.source}, {allocation.destination}) is outside the "
                f"{rows}x{columns} cost matrix"
            )
        elif allocation.value < -tolerance:
            errors.append(
                f"Allocation ({allocation.source}, {allocation.destination}) is negative: "
                f"{allocation.value:.6f}"
            )
    if errors:
        return ValidationResult(
            is_valid=False, is_complete=False, errors=errors, row_totals=[], column_totals=[]
        )

    matrix = allocation_matrix(allocations, (rows, columns))
    row_totals = [float(total) for total in matrix.sum(axis=1)]
    column_totals = [float(total) for total in matrix.sum(axis=0)]

    complete = True
    for i, (shipped, supply) in enumerate(zip(row_totals, problem.supply)):
        if shipped > supply + tolerance:
            errors.append(f"Source {i}: shipped {shipped:.6f} exceeds supply {supply:.6f}")
        if abs(shipped - supply) > tolerance:
            complete = False
    for j, (received, demand) in enumerate(zip(column_totals, problem.demand)):
        if received > demand + tolerance:
            errors.append(
                f"Destination {j}: received {received:.6f} exceeds demand {demand:.6f}"
            )
        if abs(received - demand) > tolerance:
            complete = False

    return ValidationResult(
        is_valid=not errors,
        is_complete=complete and not errors,
        errors=errors,
        row_totals=row_totals,
        column_totals=column_totals,
    )
