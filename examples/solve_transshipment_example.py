"""Solve a transshipment network through a dedicated hub and store the link flows."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import (  # noqa: E402
    load_transshipment_problem,
    save_result,
    solve_transshipment,
)


def main() -> None:
    base_dir = Path(__file__).resolve().parent
    problem_path = base_dir / "transshipment_problem.json"
    output_path = base_dir / "transshipment_solution.json"

    network = load_transshipment_problem(problem_path)
    result = solve_transshipment(network, method="vam", optimize=True)
    save_result(output_path, result)

    print(f"Solved {problem_path.name}: mode={result.reduced.mode}, objective={result.total_cost}")
    for link in result.solution.links:
        print(f"  {link.source} -> {link.target}: {link.flow:g} units at {link.cost:g}")
    for node_id, amount in result.solution.transshipped.items():
        print(f"  {node_id} forwarded {amount:g} units")


if __name__ == "__main__":
    main()
