"""Example demonstrating progress callbacks and the step trace of a MODI run."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import (  # noqa: E402
    ProgressInfo,
    SolverOptions,
    UVStep,
    build_problem,
    solve_transportation,
)


def main() -> None:
    """Show iteration progress and the recorded UV steps."""

    print("=" * 70)
    print("PROGRESS LOGGING DEMONSTRATION")
    print("=" * 70)

    # Library loggers stay silent unless the application configures logging.
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("\nBuilding transportation problem...")
    print("  6 suppliers, 6 customers, cost grows with distance")
    supply = [100.0] * 6
    demand = [100.0] * 6
    costs = [[abs(i - j) * 2.0 + 1.0 + (i * j) % 3 for j in range(6)] for i in range(6)]
    problem = build_problem(supply, demand, costs)

    def progress_callback(info: ProgressInfo) -> None:
        print(
            f"  Iteration {info.iteration:>3}/{info.max_iterations} "
            f"cost={info.objective_estimate:10.2f} elapsed={info.elapsed_time * 1000:.2f}ms"
        )

    result = solve_transportation(
        problem,
        method="nwcm",
        optimize=True,
        options=SolverOptions(max_iterations=50),
        progress_callback=progress_callback,
    )

    print(f"\nInitial (NWCM) cost: {result.initial.total_cost:g}")
    print(f"Optimized cost:      {result.solution.total_cost:g}")

    print("\nStep trace:")
    for step in result.solution.steps:
        if isinstance(step, UVStep):
            print(f"  [{step.status}] {step.description}")
        else:
            print(f"  [{step.kind}] {step.description}")


if __name__ == "__main__":
    main()
