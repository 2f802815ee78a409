"""Example script demonstrating usage of the transportation solver."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import load_problem, save_result, solve_transportation  # noqa: E402


def main() -> None:
    base_dir = Path(__file__).resolve().parent
    problem_path = base_dir / "sample_problem.json"
    output_path = base_dir / "sample_solution.json"

    problem = load_problem(problem_path)
    result = solve_transportation(problem, method="vam", optimize=True)
    save_result(output_path, result)

    print(
        f"Solved {problem_path.name}: initial={result.initial.total_cost}, "
        f"optimized={result.solution.total_cost}"
    )

    print("\nAllocations:")
    for allocation in sorted(result.solution.allocations, key=lambda a: a.cell):
        if allocation.epsilon:
            continue
        print(
            f"  Source {allocation.source + 1} -> Destination {allocation.destination + 1}: "
            f"{allocation.value:g}"
        )


if __name__ == "__main__":
    main()
