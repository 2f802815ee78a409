"""Tests for transshipment reduction and the inverse mapping."""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver.data import (  # noqa: E402
    EPSILON,
    SENTINEL_COST,
    Allocation,
    Solution,
)
from transport_solver.exceptions import InvalidProblemError  # noqa: E402
from transport_solver.initial import vogel_approximation  # noqa: E402
from transport_solver.modi import optimize  # noqa: E402
from transport_solver.solver import solve_transshipment  # noqa: E402
from transport_solver.transshipment import (  # noqa: E402
    Link,
    Node,
    build_dedicated_transshipment,
    build_mixed_transshipment,
    build_transshipment_problem,
    expand_solution,
    reduce_transshipment,
)


@pytest.fixture
def hub_network():
    return build_transshipment_problem(
        nodes=[
            {"id": "S1", "type": "supply", "value": 100},
            {"id": "S2", "type": "supply", "value": 100},
            {"id": "T1", "type": "transshipment", "value": 0},
            {"id": "D1", "type": "demand", "value": 120},
            {"id": "D2", "type": "demand", "value": 80},
        ],
        links=[
            {"from": "S1", "to": "T1", "cost": 2},
            {"from": "S2", "to": "T1", "cost": 3},
            {"from": "T1", "to": "D1", "cost": 1},
            {"from": "T1", "to": "D2", "cost": 2},
            {"from": "S1", "to": "D1", "cost": 5},
            {"from": "S2", "to": "D2", "cost": 6},
        ],
    )


@pytest.fixture
def chain_network():
    return build_transshipment_problem(
        nodes=[
            {"id": "A", "type": "supply", "value": 50},
            {"id": "B", "type": "demand", "value": 20},
            {"id": "C", "type": "demand", "value": 30},
        ],
        links=[
            {"from": "A", "to": "B", "cost": 1},
            {"from": "A", "to": "C", "cost": 5},
            {"from": "B", "to": "C", "cost": 1},
        ],
    )


def test_dedicated_reduction_layout(hub_network):
    reduced = reduce_transshipment(hub_network)

    assert reduced.mode == "dedicated"
    assert reduced.buffer == pytest.approx(200.0)
    assert reduced.row_nodes == ("S1", "S2", "T1")
    assert reduced.column_nodes == ("D1", "D2", "T1")
    assert reduced.forwarding == ("T1",)
    assert reduced.problem.supply == (100.0, 100.0, 200.0)
    assert reduced.problem.demand == (120.0, 80.0, 200.0)
    assert reduced.problem.costs == (
        (5.0, SENTINEL_COST, 2.0),
        (SENTINEL_COST, 6.0, 3.0),
        (1.0, 2.0, 0.0),
    )
    assert reduced.balance.was_balanced


def test_dedicated_network_solves_through_hub(hub_network):
    reduced = reduce_transshipment(hub_network)
    initial = vogel_approximation(reduced.problem)
    assert initial.total_cost == pytest.approx(780.0)

    solution = optimize(reduced.problem, initial)
    expanded = expand_solution(reduced, solution)

    assert expanded.total_cost == pytest.approx(780.0)
    assert {(link.source, link.target): link.flow for link in expanded.links} == {
        ("S1", "T1"): 100.0,
        ("S2", "T1"): 100.0,
        ("T1", "D1"): 120.0,
        ("T1", "D2"): 80.0,
    }
    assert expanded.transshipped == {"T1": pytest.approx(200.0)}
    assert expanded.unlinked_flows == ()
    # Round trip: network cost equals the transportation cost.
    assert expanded.total_cost == pytest.approx(solution.total_cost)


def test_mixed_reduction_builds_square_buffered_matrix(chain_network):
    reduced = reduce_transshipment(chain_network)

    assert reduced.mode == "mixed"
    assert reduced.buffer == pytest.approx(50.0)
    assert reduced.row_nodes == ("A", "B", "C")
    assert reduced.column_nodes == ("A", "B", "C")
    assert reduced.problem.supply == (100.0, 50.0, 50.0)
    assert reduced.problem.demand == (50.0, 70.0, 80.0)
    assert reduced.problem.costs == (
        (0.0, 1.0, 5.0),
        (SENTINEL_COST, 0.0, 1.0),
        (SENTINEL_COST, SENTINEL_COST, 0.0),
    )


def test_mixed_network_routes_through_demand_node(chain_network):
    reduced = reduce_transshipment(chain_network)
    solution = optimize(reduced.problem, vogel_approximation(reduced.problem))

    expanded = expand_solution(reduced, solution)

    assert expanded.total_cost == pytest.approx(80.0)
    assert {(link.source, link.target): link.flow for link in expanded.links} == {
        ("A", "B"): 50.0,
        ("B", "C"): 30.0,
    }
    assert expanded.transshipped["B"] == pytest.approx(30.0)
    assert expanded.transshipped["A"] == pytest.approx(0.0)
    assert expanded.transshipped["C"] == pytest.approx(0.0)


def test_mixed_reduction_with_restricted_forwarding():
    network = build_transshipment_problem(
        nodes=[
            {"id": "A", "type": "supply", "value": 50},
            {"id": "B", "type": "demand", "value": 20},
            {"id": "C", "type": "demand", "value": 30},
        ],
        links=[
            {"from": "A", "to": "B", "cost": 1},
            {"from": "A", "to": "C", "cost": 5},
            {"from": "B", "to": "C", "cost": 1},
        ],
        transshipment_nodes=["B"],
    )

    reduced = reduce_transshipment(network)

    assert reduced.row_nodes == ("A", "B")
    assert reduced.column_nodes == ("B", "C")
    assert reduced.problem.supply == (50.0, 50.0)
    assert reduced.problem.demand == (70.0, 30.0)
    assert reduced.problem.costs == ((1.0, 5.0), (0.0, 1.0))


def test_restricted_forwarding_rejects_unusable_link():
    network = build_transshipment_problem(
        nodes=[
            {"id": "A", "type": "supply", "value": 10},
            {"id": "B", "type": "demand", "value": 10},
        ],
        links=[{"from": "B", "to": "A", "cost": 1}],
        transshipment_nodes=[],
    )

    with pytest.raises(InvalidProblemError, match="cannot carry flow"):
        reduce_transshipment(network)


def test_dedicated_mode_rejects_link_into_supply_node(hub_network):
    hub_network.links.append(Link("T1", "S1", 1.0))

    with pytest.raises(InvalidProblemError, match="dedicated"):
        reduce_transshipment(hub_network)


def test_unbalanced_network_reports_unmet_demand():
    network = build_transshipment_problem(
        nodes=[
            {"id": "S", "type": "supply", "value": 10},
            {"id": "D", "type": "demand", "value": 15},
        ],
        links=[{"from": "S", "to": "D", "cost": 2}],
    )
    reduced = reduce_transshipment(network)

    assert reduced.balance.dummy_row is not None
    solution = optimize(reduced.problem, vogel_approximation(reduced.problem))
    expanded = expand_solution(reduced, solution)

    flows = {(link.source, link.target): link.flow for link in expanded.links}
    assert flows == {("S", "D"): 10.0}
    assert expanded.unmet_demand == {"D": pytest.approx(5.0)}
    assert expanded.total_cost == pytest.approx(20.0)


def _assert_every_node_conserves_flow(network, solution):
    inflow = {node_id: 0.0 for node_id in network.nodes}
    outflow = {node_id: 0.0 for node_id in network.nodes}
    for link in solution.links + solution.unlinked_flows:
        outflow[link.source] += link.flow
        inflow[link.target] += link.flow
    for node_id, node in network.nodes.items():
        supplied = node.value if node.type == "supply" else 0.0
        demanded = node.value if node.type == "demand" else 0.0
        received = inflow[node_id] + supplied - solution.unshipped_supply.get(node_id, 0.0)
        delivered = outflow[node_id] + demanded - solution.unmet_demand.get(node_id, 0.0)
        assert received == pytest.approx(delivered), node_id


def test_dummy_lines_are_sealed_off_from_hub_buffers():
    short = reduce_transshipment(build_dedicated_transshipment([10], [20], 1, [[9, 1], [2, 0]]))
    surplus = reduce_transshipment(build_dedicated_transshipment([20], [10], 1, [[9, 1], [2, 0]]))

    assert short.problem.costs[short.balance.dummy_row] == (0.0, SENTINEL_COST)
    assert [row[surplus.balance.dummy_column] for row in surplus.problem.costs] == [
        0.0,
        SENTINEL_COST,
    ]


@pytest.mark.parametrize("method", ["nwcm", "lcm", "vam"])
@pytest.mark.parametrize("supply, demand", [([10], [20]), ([20], [10])])
def test_hub_conserves_flow_on_unbalanced_network_without_optimization(method, supply, demand):
    network = build_dedicated_transshipment(supply, demand, 1, [[9, 1], [2, 0]])

    result = solve_transshipment(network, method=method, optimize=False)

    solution = result.solution
    hub_in = sum(link.flow for link in solution.links if link.target == "T1")
    hub_out = sum(link.flow for link in solution.links if link.source == "T1")
    assert hub_in == pytest.approx(hub_out)
    assert solution.transshipped["T1"] == pytest.approx(hub_in)
    assert "T1" not in solution.unmet_demand
    assert "T1" not in solution.unshipped_supply
    _assert_every_node_conserves_flow(network, solution)


def test_north_west_corner_dummy_flow_on_hub_becomes_unmet_demand():
    network = build_dedicated_transshipment([10], [20], 1, [[9, 1], [2, 0]])

    result = solve_transshipment(network, method="nwcm", optimize=False)

    flows = {(link.source, link.target): link.flow for link in result.solution.links}
    assert flows == {("S1", "D1"): pytest.approx(10.0)}
    assert result.solution.unmet_demand == {"D1": pytest.approx(10.0)}
    assert result.solution.transshipped == {"T1": 0.0}
    assert result.total_cost == pytest.approx(90.0)


@pytest.mark.parametrize("method", ["nwcm", "lcm", "vam"])
def test_mixed_network_conserves_flow_when_demand_exceeds_supply(method):
    network = build_mixed_transshipment(
        [10, 5], [25], [[0, 1, 9], [SENTINEL_COST, 0, 1], [SENTINEL_COST, SENTINEL_COST, 0]]
    )

    result = solve_transshipment(network, method=method, optimize=False)

    assert sum(result.solution.unmet_demand.values()) == pytest.approx(10.0)
    for node_id in ("S1", "S2"):
        assert node_id not in result.solution.unmet_demand
    _assert_every_node_conserves_flow(network, result.solution)


def test_expand_solution_reports_sentinel_flow(hub_network, caplog):
    reduced = reduce_transshipment(hub_network)
    # S1 -> D2 has no link; force flow onto it.
    solution = Solution(
        allocations=(
            Allocation(0, 1, 80.0),
            Allocation(0, 0, 20.0),
            Allocation(1, 2, 100.0),
            Allocation(2, 0, 100.0),
            Allocation(2, 2, 100.0),
            Allocation(2, 1, EPSILON, epsilon=True),
        ),
        total_cost=0.0,
    )

    with caplog.at_level("WARNING", logger="transport_solver.transshipment"):
        expanded = expand_solution(reduced, solution)

    assert [(link.source, link.target, link.flow) for link in expanded.unlinked_flows] == [
        ("S1", "D2", 80.0)
    ]
    assert expanded.transshipped["T1"] == pytest.approx(100.0)
    assert ("T1", "D2") not in {(link.source, link.target) for link in expanded.links}
    assert any("without a link" in record.getMessage() for record in caplog.records)


def test_missing_supply_node_is_rejected():
    with pytest.raises(InvalidProblemError, match="at least one supply"):
        build_transshipment_problem(
            nodes=[{"id": "D", "type": "demand", "value": 5}],
            links=[],
        )


def test_unknown_link_endpoint_is_rejected():
    with pytest.raises(InvalidProblemError, match="not found"):
        build_transshipment_problem(
            nodes=[
                {"id": "S", "type": "supply", "value": 5},
                {"id": "D", "type": "demand", "value": 5},
            ],
            links=[{"from": "S", "to": "X", "cost": 1}],
        )


def test_duplicate_links_and_nodes_are_rejected():
    nodes = [
        {"id": "S", "type": "supply", "value": 5},
        {"id": "D", "type": "demand", "value": 5},
    ]
    with pytest.raises(InvalidProblemError, match="Duplicate link"):
        build_transshipment_problem(
            nodes=nodes,
            links=[{"from": "S", "to": "D", "cost": 1}, {"from": "S", "to": "D", "cost": 2}],
        )
    with pytest.raises(InvalidProblemError, match="Duplicate node"):
        build_transshipment_problem(nodes=nodes + [nodes[0]], links=[])


def test_node_and_link_validation():
    with pytest.raises(InvalidProblemError, match="non-negative"):
        Node("S", "supply", -5.0)
    with pytest.raises(InvalidProblemError, match="unknown type"):
        Node("S", "factory", 5.0)
    with pytest.raises(InvalidProblemError, match="must have value 0"):
        Node("T", "transshipment", 5.0)
    with pytest.raises(InvalidProblemError, match="Self-link"):
        Link("A", "A", 1.0)
    with pytest.raises(InvalidProblemError, match="invalid cost"):
        Link("A", "B", -1.0)


def test_expensive_link_warns_about_sentinel(caplog):
    network = build_transshipment_problem(
        nodes=[
            {"id": "S", "type": "supply", "value": 5},
            {"id": "D", "type": "demand", "value": 5},
        ],
        links=[{"from": "S", "to": "D", "cost": 1500}],
    )

    with caplog.at_level("WARNING", logger="transport_solver.transshipment"):
        reduce_transshipment(network)

    assert any("sentinel" in record.getMessage() for record in caplog.records)


def test_build_dedicated_transshipment_from_matrix():
    network = build_dedicated_transshipment(
        supply=[100, 100],
        demand=[120, 80],
        transshipment_count=1,
        costs=[[5, 999, 2], [999, 6, 3], [1, 2, 0]],
    )

    assert network.mode == "dedicated"
    assert [node.id for node in network.transshipment_nodes] == ["T1"]
    assert {(link.source, link.target): link.cost for link in network.links} == {
        ("S1", "D1"): 5.0,
        ("S1", "T1"): 2.0,
        ("S2", "D2"): 6.0,
        ("S2", "T1"): 3.0,
        ("T1", "D1"): 1.0,
        ("T1", "D2"): 2.0,
    }
    reduced = reduce_transshipment(network)
    assert reduced.problem.costs == ((5.0, 999.0, 2.0), (999.0, 6.0, 3.0), (1.0, 2.0, 0.0))


def test_build_dedicated_transshipment_checks_dimensions():
    with pytest.raises(InvalidProblemError, match="3x3"):
        build_dedicated_transshipment([1, 1], [1, 1], 1, [[1, 1, 1], [1, 1, 1]])


def test_build_mixed_transshipment_from_matrix():
    network = build_mixed_transshipment(
        supply=[50],
        demand=[20, 30],
        costs=[[0, 1, 5], [999, 0, 1], [999, 999, 0]],
        transshipment_indices=[1],
    )

    assert network.mode == "mixed"
    assert network.transshipment_ids == ("D1",)
    assert [(link.source, link.target) for link in network.links] == [
        ("S1", "D1"),
        ("S1", "D2"),
        ("D1", "D2"),
    ]


def test_build_mixed_transshipment_rejects_bad_index():
    with pytest.raises(InvalidProblemError, match="out of range"):
        build_mixed_transshipment([5], [5], [[0, 1], [1, 0]], transshipment_indices=[2])
