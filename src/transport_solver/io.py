"""File I/O helpers for transportation and transshipment problems."""

from __future__ import annotations

import json
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any

from .data import Allocation, Solution, TransportationProblem, TransportResult, build_problem
from .exceptions import InvalidProblemError
from .transshipment import (
    TransshipmentProblem,
    TransshipmentResult,
    build_transshipment_problem,
)


def _read_json(path: str | Path) -> MutableMapping[str, Any]:
    with Path(path).open("r", encoding="utf-8") as fh:
        try:
            payload = json.load(fh)
        except json.JSONDecodeError as exc:
            raise InvalidProblemError(f"File {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidProblemError(
            f"Invalid problem format: expected a JSON object, got {type(payload).__name__}."
        )
    return payload


def problem_from_dict(payload: Mapping[str, Any]) -> TransportationProblem:
    """Build a problem from a ``{"supply", "demand", "costs"}`` mapping."""
    supply = payload.get("supply")
    demand = payload.get("demand")
    costs = payload.get("costs")
    if not isinstance(supply, list) or not isinstance(demand, list) or not isinstance(costs, list):
        raise InvalidProblemError(
            "Invalid problem format: JSON must include 'supply', 'demand' and 'costs' arrays. "
            f"Got supply type: {type(supply).__name__}, demand type: {type(demand).__name__}, "
            f"costs type: {type(costs).__name__}"
        )
    if not all(isinstance(row, list) for row in costs):
        raise InvalidProblemError("Invalid problem format: 'costs' must be a list of rows.")
    # Defer to the core builder so validation rules remain centralized in one place.
    return build_problem(supply, demand, costs)


def load_problem(path: str | Path) -> TransportationProblem:
    """Load a transportation problem from a JSON file."""
    return problem_from_dict(_read_json(path))


def load_transshipment_problem(path: str | Path) -> TransshipmentProblem:
    """Load a transshipment network from a JSON file."""
    payload = _read_json(path)
    nodes = payload.get("nodes")
    links = payload.get("links")
    if not isinstance(nodes, list) or not isinstance(links, list):
        raise InvalidProblemError(
            "Invalid problem format: JSON must include 'nodes' and 'links' arrays. "
            f"Got nodes type: {type(nodes).__name__}, links type: {type(links).__name__}"
        )
    forwarding = payload.get("transshipment_nodes")
    if forwarding is not None and not isinstance(forwarding, list):
        raise InvalidProblemError("'transshipment_nodes' must be a list of node ids.")
    return build_transshipment_problem(nodes, links, forwarding)


def _allocation_records(allocations: tuple[Allocation, ...]) -> list[dict[str, Any]]:
    return [
        {
            "source": allocation.source,
            "destination": allocation.destination,
            "value": allocation.flow,
            "epsilon": allocation.epsilon,
        }
        for allocation in sorted(allocations, key=lambda a: a.cell)
    ]


def _solution_dict(solution: Solution) -> dict[str, Any]:
    return {
        "method": solution.method,
        "total_cost": solution.total_cost,
        "is_optimal": solution.is_optimal,
        "iterations": solution.iterations,
        "allocations": _allocation_records(solution.allocations),
    }


def transport_result_dict(result: TransportResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "problem": {
            "supply": list(result.problem.supply),
            "demand": list(result.problem.demand),
            "costs": [list(row) for row in result.problem.costs],
        },
        "dummy_row": result.balance.dummy_row,
        "dummy_column": result.balance.dummy_column,
        "initial": _solution_dict(result.initial),
    }
    if result.optimized is not None:
        data["optimized"] = _solution_dict(result.optimized)
    return data


def transshipment_result_dict(result: TransshipmentResult) -> dict[str, Any]:
    solution = result.solution
    return {
        "mode": result.reduced.mode,
        "buffer": result.reduced.buffer,
        "total_cost": solution.total_cost,
        "links": [
            {"from": link.source, "to": link.target, "cost": link.cost, "flow": link.flow}
            for link in solution.links
        ],
        "transshipped": dict(sorted(solution.transshipped.items())),
        "unlinked_flows": [
            {"from": link.source, "to": link.target, "flow": link.flow}
            for link in solution.unlinked_flows
        ],
        "unmet_demand": dict(sorted(solution.unmet_demand.items())),
        "unshipped_supply": dict(sorted(solution.unshipped_supply.items())),
        "transport": transport_result_dict(result.transport),
    }


def save_result(path: str | Path, result: TransportResult | TransshipmentResult) -> None:
    """Persist a solver result to JSON."""
    # Sort allocation entries for deterministic output that is easy to diff in fixtures.
    if isinstance(result, TransshipmentResult):
        data = transshipment_result_dict(result)
    else:
        data = transport_result_dict(result)
    with Path(path).open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, sort_keys=False)
