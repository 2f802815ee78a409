"""Public solver entrypoints."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .balancing import balance_problem
from .data import (
    Method,
    ProgressCallback,
    SolverOptions,
    TransportationProblem,
    TransportResult,
)
from .initial import build_initial_solution
from .io import load_problem as load_problem_file
from .io import load_transshipment_problem as load_transshipment_file
from .io import problem_from_dict
from .io import save_result as save_result_file
from .modi import ModiOptimizer
from .transshipment import (
    TransshipmentProblem,
    TransshipmentResult,
    expand_solution,
    reduce_transshipment,
)

logger = logging.getLogger(__name__)


def _solve_balanced(
    problem: TransportationProblem,
    method: Method,
    optimize: bool,
    options: SolverOptions | None,
    progress_callback: ProgressCallback | None,
) -> TransportResult:
    balance = balance_problem(problem)
    balanced = balance.problem
    initial = build_initial_solution(balanced, method, options)
    optimized = None
    if optimize:
        optimized = ModiOptimizer(balanced, options=options).optimize(
            initial, progress_callback=progress_callback
        )
    return TransportResult(problem=balanced, balance=balance, initial=initial, optimized=optimized)


def solve_transportation(
    problem: TransportationProblem | Mapping[str, Any],
    method: Method = "vam",
    optimize: bool = False,
    options: SolverOptions | None = None,
    progress_callback: ProgressCallback | None = None,
) -> TransportResult:
    """Solve a transportation problem with an initial heuristic and, optionally, MODI.

    The problem is balanced first (a zero-cost dummy row or column absorbs any
    supply/demand gap), then the selected heuristic builds an initial basic
    feasible solution. With ``optimize=True`` the MODI optimizer improves it.

    Args:
        problem: A TransportationProblem, or a mapping with 'supply', 'demand' and
                 'costs' entries.
        method: Initial heuristic: 'nwcm', 'lcm' or 'vam' (default).
        optimize: Run the MODI optimizer on the initial solution.
        options: Solver configuration. If None, uses defaults.
        progress_callback: Optional callback receiving ProgressInfo once per MODI
                           iteration.

    Returns:
        TransportResult with the balanced problem, balancing metadata, the initial
        solution and, if requested, the optimized solution. Allocations index into
        the balanced problem; check ``result.balance`` for dummy lines.

    Raises:
        InvalidProblemError: If the problem is malformed.
        SolverConfigurationError: If ``method`` is unknown.

    Examples:
        >>> from transport_solver import solve_transportation
        >>> result = solve_transportation(
        ...     {"supply": [20, 30, 25], "demand": [10, 25, 40],
        ...      "costs": [[4, 6, 8], [5, 4, 3], [6, 5, 4]]},
        ...     method="nwcm",
        ...     optimize=True,
        ... )
        >>> result.initial.total_cost, result.solution.total_cost
        (305.0, 305.0)

    Note:
        ``solution.is_optimal`` is always True after optimization; when the
        iteration cap or a numerical fallback ended the run, it is the best solution
        seen. Use :func:`transport_solver.modi.is_optimal` for a direct check.
    """
    if not isinstance(problem, TransportationProblem):
        problem = problem_from_dict(problem)
    logger.info(
        "Solving transportation problem",
        extra={
            "rows": problem.shape[0],
            "columns": problem.shape[1],
            "method": method,
            "optimize": optimize,
        },
    )
    return _solve_balanced(problem, method, optimize, options, progress_callback)


def solve_transshipment(
    problem: TransshipmentProblem,
    method: Method = "vam",
    optimize: bool = True,
    options: SolverOptions | None = None,
    progress_callback: ProgressCallback | None = None,
) -> TransshipmentResult:
    """Solve a transshipment network by reduction to a transportation problem.

    The network is reduced (dedicated or mixed layout), solved like any
    transportation problem, and the final allocations are mapped back onto the
    network's links.

    Returns:
        TransshipmentResult with the reduction, the transportation result and the
        link flows. ``result.total_cost`` is the cost over the original links.

    Raises:
        InvalidProblemError: If the network is invalid.
    """
    reduced = reduce_transshipment(problem)
    logger.info(
        "Solving transshipment problem",
        extra={
            "mode": reduced.mode,
            "nodes": len(problem.nodes),
            "links": len(problem.links),
            "method": method,
            "optimize": optimize,
        },
    )
    transport = _solve_balanced(reduced.problem, method, optimize, options, progress_callback)
    expanded = expand_solution(reduced, transport.solution)
    return TransshipmentResult(reduced=reduced, transport=transport, solution=expanded)


def load_problem(path: str | Path) -> TransportationProblem:
    """Load a transportation problem from a JSON file.

    Args:
        path: Path to a JSON file with 'supply', 'demand' and 'costs'.

    Raises:
        FileNotFoundError: If file does not exist.
        InvalidProblemError: If JSON is malformed or problem is invalid.

    See Also:
        - save_result(): Save solution to JSON
        - build_problem(): Construct problem from sequences
    """
    # Reuse the IO helpers so callers interact with a single parsing implementation.
    return load_problem_file(path)


def load_transshipment_problem(path: str | Path) -> TransshipmentProblem:
    """Load a transshipment network from a JSON file with 'nodes' and 'links'."""
    return load_transshipment_file(path)


def save_result(path: str | Path, result: TransportResult | TransshipmentResult) -> None:
    """Save a transportation or transshipment result to a JSON file.

    Raises:
        OSError: If file cannot be written.
    """
    # Mirror load_problem to keep round-trip logic encapsulated in the IO layer.
    save_result_file(path, result)
