"""Custom exceptions for the transportation solver library."""

from __future__ import annotations


class TransportSolverError(Exception):
    """Base exception for all transportation solver errors.

    All custom exceptions in the transport_solver package inherit from this class,
    allowing users to catch all solver-related errors with a single except clause.

    Example:
        try:
            result = solve_transportation(problem, method="vam")
        except TransportSolverError as e:
            print(f"Solver error: {e}")
    """


class InvalidProblemError(TransportSolverError):
    """Raised when a problem definition is invalid or malformed.

    This includes:
    - Cost matrix dimensions that do not match the supply/demand lengths
    - Negative or non-finite supply, demand or cost values
    - Transshipment networks without a supply node or without a demand node
    - Links referencing unknown nodes, duplicate node ids or duplicate links
    - Malformed JSON input

    Validation errors are surfaced immediately; the solver never retries them.

    Example:
        # Mismatched dimensions
        InvalidProblemError("Cost matrix has 2 rows but supply has 3 entries")

        # Ill-formed transshipment network
        InvalidProblemError("Transshipment problem must have at least one demand node")
    """


class SolverConfigurationError(TransportSolverError):
    """Raised when solver configuration or options are invalid.

    This includes:
    - Unknown initial-solution method names
    - Non-positive iteration limits or tolerances
    - Incompatible option combinations

    Example:
        SolverConfigurationError("Unknown method 'simplex'. Must be one of: lcm, nwcm, vam.")
    """
