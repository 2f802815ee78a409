"""High-level entrypoints for the transportation problem solver library."""

from .balancing import BalanceResult, balance_problem, is_balanced
from .data import (
    EPSILON,
    SENTINEL_COST,
    Allocation,
    Method,
    ProgressCallback,
    ProgressInfo,
    Solution,
    SolverOptions,
    TransportationProblem,
    TransportResult,
    build_problem,
)
from .exceptions import InvalidProblemError, SolverConfigurationError, TransportSolverError
from .initial import (
    INITIAL_METHODS,
    build_initial_solution,
    least_cost,
    north_west_corner,
    vogel_approximation,
)
from .modi import ModiOptimizer, optimize
from .solver import (
    load_problem,
    load_transshipment_problem,
    save_result,
    solve_transportation,
    solve_transshipment,
)
from .steps import AllocationStep, PenaltyStep, Step, UVStep
from .transshipment import (
    Link,
    Node,
    ReducedProblem,
    TransshipmentProblem,
    TransshipmentResult,
    TransshipmentSolution,
    build_dedicated_transshipment,
    build_mixed_transshipment,
    build_transshipment_problem,
    expand_solution,
    reduce_transshipment,
)
from .utils import ValidationResult, allocation_matrix, compute_total_cost, validate_solution

__version__ = "0.1.0"

__all__ = [
    # Main API
    "build_problem",
    "load_problem",
    "solve_transportation",
    "save_result",
    # Transshipment
    "solve_transshipment",
    "load_transshipment_problem",
    "build_transshipment_problem",
    "build_dedicated_transshipment",
    "build_mixed_transshipment",
    "reduce_transshipment",
    "expand_solution",
    "Node",
    "Link",
    "TransshipmentProblem",
    "ReducedProblem",
    "TransshipmentSolution",
    "TransshipmentResult",
    # Data model
    "TransportationProblem",
    "Allocation",
    "Method",
    "Solution",
    "TransportResult",
    "EPSILON",
    "SENTINEL_COST",
    # Configuration
    "SolverOptions",
    # Progress tracking
    "ProgressCallback",
    "ProgressInfo",
    # Algorithms
    "balance_problem",
    "is_balanced",
    "BalanceResult",
    "north_west_corner",
    "least_cost",
    "vogel_approximation",
    "build_initial_solution",
    "INITIAL_METHODS",
    "ModiOptimizer",
    "optimize",
    # Steps
    "Step",
    "PenaltyStep",
    "AllocationStep",
    "UVStep",
    # Utilities
    "compute_total_cost",
    "allocation_matrix",
    "validate_solution",
    "ValidationResult",
    # Exceptions
    "TransportSolverError",
    "InvalidProblemError",
    "SolverConfigurationError",
]
