"""Solve the textbook transportation example with each heuristic and store the result."""

from __future__ import annotations

from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import (  # noqa: E402
    SolverOptions,
    load_problem,
    save_result,
    solve_transportation,
)


def main() -> None:
    base_dir = Path(__file__).resolve().parent
    problem_path = base_dir / "textbook_transport_problem.json"
    output_path = base_dir / "textbook_transport_solution.json"

    problem = load_problem(problem_path)
    options = SolverOptions(max_iterations=50)
    for method in ("nwcm", "lcm", "vam"):
        result = solve_transportation(problem, method=method, optimize=True, options=options)
        print(
            f"{method}: initial={result.initial.total_cost:g}, "
            f"optimized={result.solution.total_cost:g}, "
            f"iterations={result.solution.iterations}"
        )

    save_result(output_path, result)
    print(f"Solved {problem_path.name}: objective={result.solution.total_cost}")


if __name__ == "__main__":
    main()
