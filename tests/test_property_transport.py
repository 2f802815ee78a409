import math
import sys
from pathlib import Path
from typing import List, Tuple

import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import HealthCheck, given, settings  # type: ignore  # noqa: E402
from hypothesis import strategies as st  # type: ignore  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver.balancing import balance_problem  # noqa: E402
from transport_solver.data import SolverOptions, build_problem  # noqa: E402
from transport_solver.initial import INITIAL_METHODS  # noqa: E402
from transport_solver.modi import optimize  # noqa: E402
from transport_solver.solver import solve_transshipment  # noqa: E402
from transport_solver.transshipment import build_mixed_transshipment  # noqa: E402
from transport_solver.utils import validate_solution  # noqa: E402


def _partition(draw, total: int, parts: int) -> List[int]:
    # Split ``total`` into ``parts`` positive integers.
    amounts: List[int] = []
    remaining = total
    for idx in range(parts):
        if idx == parts - 1:
            amounts.append(remaining)
        else:
            amount = draw(st.integers(min_value=1, max_value=remaining - (parts - idx - 1)))
            amounts.append(amount)
            remaining -= amount
    return amounts


@st.composite
def _balanced_problems(draw) -> Tuple[List[int], List[int], List[List[int]]]:
    # Small balanced instances across every shape from 1x1 to 4x4.
    rows = draw(st.integers(min_value=1, max_value=4))
    columns = draw(st.integers(min_value=1, max_value=4))
    supply = [draw(st.integers(min_value=1, max_value=18)) for _ in range(rows)]
    total = sum(supply)
    # Guarantee every demand column can receive at least one unit.
    if total < columns:
        supply[0] += columns - total
        total = columns
    demand = _partition(draw, total, columns)
    costs = [
        [draw(st.integers(min_value=0, max_value=20)) for _ in range(columns)] for _ in range(rows)
    ]
    return supply, demand, costs


@st.composite
def _mixed_networks(draw) -> Tuple[List[int], List[int], List[List[int]]]:
    supply_count = draw(st.integers(min_value=1, max_value=3))
    demand_count = draw(st.integers(min_value=1, max_value=3))
    supply = [draw(st.integers(min_value=1, max_value=12)) for _ in range(supply_count)]
    total = sum(supply)
    if total < demand_count:
        supply[0] += demand_count - total
        total = demand_count
    demand = _partition(draw, total, demand_count)
    size = supply_count + demand_count
    costs = [
        [draw(st.integers(min_value=1, max_value=20)) for _ in range(size)] for _ in range(size)
    ]
    return supply, demand, costs


_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)


@_SETTINGS
@given(_balanced_problems(), st.sampled_from(sorted(INITIAL_METHODS)))
def test_heuristics_allocate_all_supply_and_demand(instance, method):
    supply, demand, costs = instance
    problem = build_problem(supply, demand, costs)

    solution = INITIAL_METHODS[method](problem)

    validation = validate_solution(problem, solution)
    assert validation.is_valid, validation.errors
    assert validation.is_complete
    assert len({allocation.cell for allocation in solution.allocations}) <= (
        len(supply) + len(demand) - 1
    )


@_SETTINGS
@given(_balanced_problems(), st.sampled_from(sorted(INITIAL_METHODS)))
def test_optimizer_never_worsens_a_feasible_solution(instance, method):
    supply, demand, costs = instance
    problem = build_problem(supply, demand, costs)
    initial = INITIAL_METHODS[method](problem)

    optimized = optimize(problem, initial, SolverOptions(max_iterations=200))

    assert optimized.total_cost <= initial.total_cost + 1e-6
    validation = validate_solution(problem, optimized)
    assert validation.is_valid, validation.errors
    assert validation.is_complete


@_SETTINGS
@given(_balanced_problems())
def test_optimal_solution_is_stable_under_reoptimization(instance):
    supply, demand, costs = instance
    problem = build_problem(supply, demand, costs)
    options = SolverOptions(max_iterations=200)

    first = optimize(problem, INITIAL_METHODS["nwcm"](problem), options)
    uv_steps = [step for step in first.steps if step.kind == "uv"]
    if not uv_steps or uv_steps[-1].status != "optimal":
        return

    second = optimize(problem, first, options)

    assert not any(step.kind == "uv" and step.status == "pivot" for step in second.steps)
    assert math.isclose(second.total_cost, first.total_cost, abs_tol=1e-6)


@_SETTINGS
@given(_mixed_networks())
def test_mixed_network_costs_survive_reduction(instance):
    supply, demand, costs = instance
    network = build_mixed_transshipment(supply, demand, costs)

    result = solve_transshipment(network, method="vam", optimize=True)

    assert result.solution.unlinked_flows == ()
    assert math.isclose(
        result.total_cost, result.transport.solution.total_cost, rel_tol=1e-9, abs_tol=1e-6
    )
    for node_id, amount in result.solution.transshipped.items():
        assert node_id in network.nodes
        assert -1e-9 <= amount <= result.reduced.buffer + 1e-9


@_SETTINGS
@given(
    st.lists(st.integers(min_value=0, max_value=30), min_size=1, max_size=4),
    st.lists(st.integers(min_value=0, max_value=30), min_size=1, max_size=4),
)
def test_balancing_is_idempotent_for_any_totals(supply, demand):
    costs = [[1] * len(demand) for _ in supply]
    first = balance_problem(build_problem(supply, demand, costs))

    second = balance_problem(first.problem)

    assert first.problem.is_balanced()
    assert second.problem is first.problem
    assert second.dummy_row is None and second.dummy_column is None
