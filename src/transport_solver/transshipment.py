"""Reduction of transshipment networks to balanced transportation problems.

Two layouts are supported:

* **dedicated**: the network has nodes of type ``transshipment``. Rows are the
  supply nodes followed by the transshipment nodes, columns are the demand nodes
  followed by the transshipment nodes.
* **mixed**: there are no dedicated transshipment nodes, and supply or demand nodes
  may forward flow themselves. By default every node may forward; pass
  ``transshipment_ids`` to restrict this to a subset.

A forwarding node gets a row and a column, both raised by a buffer equal to the
total original supply, so it can pass the whole flow without becoming a
bottleneck. Flow a forwarding node keeps on its own zero-cost diagonal cell is
buffer that was not used. Cells without a link get ``SENTINEL_COST``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from .balancing import BalanceResult, balance_problem
from .data import (
    ALLOCATION_TOLERANCE,
    SENTINEL_COST,
    Solution,
    TransportationProblem,
    TransportResult,
)
from .exceptions import InvalidProblemError

logger = logging.getLogger(__name__)

NODE_TYPES = ("supply", "demand", "transshipment")


@dataclass(frozen=True)
class Node:
    """A node of a transshipment network.

    Attributes:
        id: Unique identifier for the node.
        type: 'supply', 'demand' or 'transshipment'.
        value: Units available (supply) or required (demand), as a non-negative
               magnitude. Dedicated transshipment nodes have value 0.

    Examples:
        >>> factory = Node(id="factory", type="supply", value=100.0)
        >>> hub = Node(id="hub", type="transshipment")
    """

    id: str
    type: str
    value: float = 0.0

    def __post_init__(self) -> None:
        if self.type not in NODE_TYPES:
            raise InvalidProblemError(
                f"Node '{self.id}' has unknown type '{self.type}'. Must be one of: "
                f"{', '.join(NODE_TYPES)}."
            )
        if not math.isfinite(self.value) or self.value < 0:
            raise InvalidProblemError(
                f"Node '{self.id}' has invalid value {self.value!r}. Node values are "
                f"non-negative magnitudes; the type tells supply from demand."
            )
        if self.type == "transshipment" and self.value != 0:
            raise InvalidProblemError(
                f"Transshipment node '{self.id}' has value {self.value}. Transshipment "
                f"nodes only forward flow and must have value 0."
            )


@dataclass(frozen=True)
class Link:
    """A directed link between two nodes.

    Attributes:
        source: ID of the node the flow leaves.
        target: ID of the node the flow enters.
        cost: Cost per unit of flow.
        flow: Units shipped (0.0 on input links, set on solution links).

    Raises:
        InvalidProblemError: If source == target, or if cost or flow is negative.
    """

    source: str
    target: str
    cost: float
    flow: float = 0.0

    def __post_init__(self) -> None:
        if self.source == self.target:
            raise InvalidProblemError(
                f"Self-link detected on node '{self.source}'. A node's own row/column cell "
                f"is reserved for unused transshipment capacity."
            )
        if not math.isfinite(self.cost) or self.cost < 0:
            raise InvalidProblemError(
                f"Link {self.source} -> {self.target} has invalid cost {self.cost!r}. "
                f"Costs must be finite and >= 0."
            )
        if self.flow < 0:
            raise InvalidProblemError(
                f"Link {self.source} -> {self.target} has negative flow {self.flow}."
            )


@dataclass
class TransshipmentProblem:
    """A transshipment network: supply, demand and pass-through nodes joined by links.

    Attributes:
        nodes: Dictionary mapping node IDs to Node objects (insertion order is kept
               and decides the row/column order of the reduced problem).
        links: List of Link objects.
        transshipment_ids: Nodes allowed to forward flow in mixed mode. None means
                           every node. Ignored in dedicated mode.

    Examples:
        >>> problem = build_transshipment_problem(
        ...     nodes=[
        ...         {"id": "A", "type": "supply", "value": 50},
        ...         {"id": "B", "type": "demand", "value": 20},
        ...         {"id": "C", "type": "demand", "value": 30},
        ...     ],
        ...     links=[
        ...         {"from": "A", "to": "B", "cost": 1},
        ...         {"from": "B", "to": "C", "cost": 1},
        ...     ],
        ... )
        >>> problem.mode
        'mixed'

    See Also:
        - build_transshipment_problem(): Construct from dictionaries (JSON input).
        - reduce_transshipment(): Convert to a balanced transportation problem.
    """

    nodes: dict[str, Node]
    links: list[Link]
    transshipment_ids: tuple[str, ...] | None = None

    @property
    def mode(self) -> str:
        return "dedicated" if self.transshipment_nodes else "mixed"

    @property
    def supply_nodes(self) -> list[Node]:
        return [node for node in self.nodes.values() if node.type == "supply"]

    @property
    def demand_nodes(self) -> list[Node]:
        return [node for node in self.nodes.values() if node.type == "demand"]

    @property
    def transshipment_nodes(self) -> list[Node]:
        return [node for node in self.nodes.values() if node.type == "transshipment"]

    @property
    def total_supply(self) -> float:
        return math.fsum(node.value for node in self.supply_nodes)

    @property
    def total_demand(self) -> float:
        return math.fsum(node.value for node in self.demand_nodes)

    def link_costs(self) -> dict[tuple[str, str], float]:
        return {(link.source, link.target): link.cost for link in self.links}

    def forwarding_ids(self) -> list[str]:
        """IDs of the nodes that get a buffered row and column, in node order."""
        if self.mode == "dedicated":
            return [node.id for node in self.transshipment_nodes]
        if self.transshipment_ids is None:
            return list(self.nodes)
        allowed = set(self.transshipment_ids)
        return [node_id for node_id in self.nodes if node_id in allowed]

    def validate(self) -> None:
        if not self.supply_nodes or not self.demand_nodes:
            raise InvalidProblemError(
                "Transshipment problem must have at least one supply and one demand node."
            )
        seen: set[tuple[str, str]] = set()
        for link in self.links:
            if link.source not in self.nodes:
                raise InvalidProblemError(
                    f"Link source '{link.source}' not found in node set. All link endpoints "
                    f"must reference existing nodes."
                )
            if link.target not in self.nodes:
                raise InvalidProblemError(
                    f"Link target '{link.target}' not found in node set. All link endpoints "
                    f"must reference existing nodes."
                )
            if (link.source, link.target) in seen:
                raise InvalidProblemError(
                    f"Duplicate link {link.source} -> {link.target}. Each node pair may be "
                    f"linked at most once."
                )
            seen.add((link.source, link.target))
        if self.transshipment_ids is not None:
            for node_id in self.transshipment_ids:
                if node_id not in self.nodes:
                    raise InvalidProblemError(
                        f"Transshipment node '{node_id}' not found in node set."
                    )


def build_transshipment_problem(
    nodes: Iterable[Mapping[str, object]],
    links: Iterable[Mapping[str, object]],
    transshipment_nodes: Iterable[object] | None = None,
) -> TransshipmentProblem:
    """Factory helper used by the IO layer to assemble a transshipment network.

    Nodes are mappings with ``id``, ``type`` and ``value``; links are mappings with
    ``from``, ``to`` and ``cost``. Node IDs are converted to strings.
    """
    node_map: dict[str, Node] = {}
    for entry in nodes:
        try:
            node_id = str(entry["id"])
            node = Node(
                id=node_id,
                type=str(entry["type"]),
                value=float(entry.get("value", 0.0)),  # type: ignore[arg-type]
            )
        except KeyError as exc:
            raise InvalidProblemError(f"Node entry is missing field {exc}: {dict(entry)}") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidProblemError(f"Node entry has a non-numeric value: {dict(entry)}") from exc
        if node_id in node_map:
            raise InvalidProblemError(f"Duplicate node id '{node_id}'.")
        node_map[node_id] = node

    link_list: list[Link] = []
    for entry in links:
        try:
            link_list.append(
                Link(
                    source=str(entry["from"]),
                    target=str(entry["to"]),
                    cost=float(entry["cost"]),  # type: ignore[arg-type]
                )
            )
        except KeyError as exc:
            raise InvalidProblemError(f"Link entry is missing field {exc}: {dict(entry)}") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidProblemError(f"Link entry has a non-numeric cost: {dict(entry)}") from exc

    forwarding = None
    if transshipment_nodes is not None:
        forwarding = tuple(str(node_id) for node_id in transshipment_nodes)
    problem = TransshipmentProblem(nodes=node_map, links=link_list, transshipment_ids=forwarding)
    problem.validate()
    return problem


@dataclass(frozen=True)
class ReducedProblem:
    """A transshipment network expressed as a balanced transportation problem.

    Attributes:
        network: The transshipment problem that was reduced.
        mode: 'dedicated' or 'mixed'.
        balance: Balancing result; ``balance.problem`` is the problem to solve.
        row_nodes: Node ID behind each row of the unbalanced matrix.
        column_nodes: Node ID behind each column of the unbalanced matrix.
        buffer: Capacity added to every forwarding node's row and column.
        forwarding: IDs of the nodes that received the buffer.
    """

    network: TransshipmentProblem
    mode: str
    balance: BalanceResult
    row_nodes: tuple[str, ...]
    column_nodes: tuple[str, ...]
    buffer: float
    forwarding: tuple[str, ...] = field(default=())

    @property
    def problem(self) -> TransportationProblem:
        return self.balance.problem


@dataclass(frozen=True)
class TransshipmentSolution:
    """Flows of a transportation solution mapped back onto the network.

    Attributes:
        links: Links that carry flow, in input order, with ``flow`` set.
        total_cost: Sum of ``cost * flow`` over ``links``.
        transshipped: Units forwarded by each forwarding node: what it receives beyond
                      the demand it keeps (buffer minus its diagonal flow when no
                      dummy flow is involved).
        unlinked_flows: Flow the solver placed on cells with no link (sentinel cost).
                        Non-empty only when no feasible plan avoids them.
        unmet_demand: Demand left unserved (covered by the dummy supply row), per node.
        unshipped_supply: Supply sent to the dummy demand column, per node.
    """

    links: tuple[Link, ...]
    total_cost: float
    transshipped: dict[str, float] = field(default_factory=dict)
    unlinked_flows: tuple[Link, ...] = ()
    unmet_demand: dict[str, float] = field(default_factory=dict)
    unshipped_supply: dict[str, float] = field(default_factory=dict)


def _check_sentinel(network: TransshipmentProblem) -> None:
    expensive = [link for link in network.links if link.cost >= SENTINEL_COST]
    if expensive:
        logger.warning(
            "Link costs reach the no-link sentinel; missing links are no longer distinguishable",
            extra={
                "sentinel": SENTINEL_COST,
                "links": [(link.source, link.target) for link in expensive],
            },
        )


def _dedicated_layout(network: TransshipmentProblem) -> tuple[list[Node], list[Node]]:
    rows = network.supply_nodes + network.transshipment_nodes
    columns = network.demand_nodes + network.transshipment_nodes
    row_ids = {node.id for node in rows}
    column_ids = {node.id for node in columns}
    for link in network.links:
        if link.source not in row_ids or link.target not in column_ids:
            raise InvalidProblemError(
                f"Link {link.source} -> {link.target} cannot be represented with dedicated "
                f"transshipment nodes: flow may only leave supply or transshipment nodes and "
                f"only enter demand or transshipment nodes."
            )
    return rows, columns


def _mixed_layout(
    network: TransshipmentProblem, forwarding: set[str]
) -> tuple[list[Node], list[Node]]:
    rows = [
        node
        for node in network.nodes.values()
        if node.id in forwarding or (node.type == "supply" and node.value > 0)
    ]
    columns = [
        node
        for node in network.nodes.values()
        if node.id in forwarding or (node.type == "demand" and node.value > 0)
    ]
    row_ids = {node.id for node in rows}
    column_ids = {node.id for node in columns}
    for link in network.links:
        if link.source not in row_ids or link.target not in column_ids:
            raise InvalidProblemError(
                f"Link {link.source} -> {link.target} cannot carry flow: a node must be a "
                f"transshipment node to forward flow it receives."
            )
    return rows, columns


def _seal_dummy_lines(
    balance: BalanceResult, rows: Sequence[Node], columns: Sequence[Node]
) -> BalanceResult:
    # The dummy row may only stand in for real demand and the dummy column may only
    # absorb real supply, so buffered-only lines get the no-link cost there.
    if balance.was_balanced:
        return balance
    problem = balance.problem
    costs = [list(row) for row in problem.costs]
    if balance.dummy_row is not None:
        for j, node in enumerate(columns):
            if node.type != "demand":
                costs[balance.dummy_row][j] = SENTINEL_COST
    if balance.dummy_column is not None:
        for i, node in enumerate(rows):
            if node.type != "supply":
                costs[i][balance.dummy_column] = SENTINEL_COST
    sealed = TransportationProblem(
        supply=problem.supply,
        demand=problem.demand,
        costs=tuple(tuple(row) for row in costs),
    )
    return replace(balance, problem=sealed)


def reduce_transshipment(network: TransshipmentProblem) -> ReducedProblem:
    """Convert a transshipment network into a balanced transportation problem.

    Args:
        network: Network to reduce. It is validated first.

    Returns:
        ReducedProblem whose ``problem`` can be handed to any initial method and the
        MODI optimizer, and whose metadata drives :func:`expand_solution`.

    Raises:
        InvalidProblemError: If the network is invalid or has links the layout
            cannot represent.
    """
    network.validate()
    _check_sentinel(network)
    mode = network.mode
    forwarding_ids = network.forwarding_ids()
    forwarding = set(forwarding_ids)
    buffer = network.total_supply

    if mode == "dedicated":
        rows, columns = _dedicated_layout(network)
    else:
        rows, columns = _mixed_layout(network, forwarding)

    supply = [
        (node.value if node.type == "supply" else 0.0) + (buffer if node.id in forwarding else 0.0)
        for node in rows
    ]
    demand = [
        (node.value if node.type == "demand" else 0.0) + (buffer if node.id in forwarding else 0.0)
        for node in columns
    ]
    link_costs = network.link_costs()
    costs = [
        [
            0.0 if row.id == column.id else link_costs.get((row.id, column.id), SENTINEL_COST)
            for column in columns
        ]
        for row in rows
    ]

    raw = TransportationProblem(
        supply=tuple(supply),
        demand=tuple(demand),
        costs=tuple(tuple(row) for row in costs),
    )
    balance = _seal_dummy_lines(balance_problem(raw), rows, columns)
    logger.debug(
        "Reduced transshipment network",
        extra={
            "mode": mode,
            "rows": len(rows),
            "columns": len(columns),
            "buffer": buffer,
            "forwarding": forwarding_ids,
            "balanced": balance.was_balanced,
        },
    )
    return ReducedProblem(
        network=network,
        mode=mode,
        balance=balance,
        row_nodes=tuple(node.id for node in rows),
        column_nodes=tuple(node.id for node in columns),
        buffer=buffer,
        forwarding=tuple(forwarding_ids),
    )


def _withdraw(
    shipped: dict[tuple[str, str], float],
    origin: str,
    amount: float,
    downstream: bool,
    absorbed: dict[str, float],
    capacity: Mapping[str, float],
    tolerance: float,
) -> None:
    """Cancel ``amount`` units of flow that ``origin`` forwarded but never received.

    With ``downstream`` set the units are removed from the links leaving ``origin``
    and each receiver books them as unmet demand, up to its own demand. Otherwise
    they are removed from the links entering ``origin`` and each sender books them
    as unshipped supply, up to its own supply. Whatever a node cannot book is
    passed on along its own links.
    """
    pending = [(origin, amount)]
    while pending:
        node_id, excess = pending.pop()
        side = 0 if downstream else 1
        for pair in sorted(p for p, flow in shipped.items() if p[side] == node_id and flow > 0):
            if excess <= tolerance:
                break
            take = min(excess, shipped[pair])
            shipped[pair] -= take
            excess -= take
            other = pair[1 - side]
            room = max(capacity.get(other, 0.0) - absorbed.get(other, 0.0), 0.0)
            booked = min(take, room)
            if booked > tolerance:
                absorbed[other] = absorbed.get(other, 0.0) + booked
            if take - booked > tolerance:
                pending.append((other, take - booked))
        if excess > tolerance:
            logger.warning(
                "Could not cancel dummy flow through node",
                extra={"node": node_id, "excess": excess},
            )


def expand_solution(
    reduced: ReducedProblem,
    solution: Solution,
    tolerance: float = ALLOCATION_TOLERANCE,
) -> TransshipmentSolution:
    """Map a transportation solution of ``reduced.problem`` back onto the network.

    Diagonal cells, dummy cells and epsilon placeholders are not shipments. The
    remaining flow is summed per node pair into Link records.

    Dummy flow is booked as unmet demand or unshipped supply only up to the node's
    own demand or supply. Dummy units on a node's buffer would let it forward flow
    it never received (or hold flow it never passes on), so they are cancelled
    along the node's links instead and every node conserves flow.
    """
    balance = reduced.balance
    network = reduced.network
    link_costs = network.link_costs()
    shipped: dict[tuple[str, str], float] = {}
    unmet: dict[str, float] = {}
    unshipped: dict[str, float] = {}

    for allocation in solution.allocations:
        if allocation.epsilon or allocation.value <= tolerance:
            continue
        i, j = allocation.source, allocation.destination
        if balance.dummy_row is not None and i == balance.dummy_row:
            node_id = reduced.column_nodes[j]
            unmet[node_id] = unmet.get(node_id, 0.0) + allocation.value
            continue
        if balance.dummy_column is not None and j == balance.dummy_column:
            node_id = reduced.row_nodes[i]
            unshipped[node_id] = unshipped.get(node_id, 0.0) + allocation.value
            continue
        pair = (reduced.row_nodes[i], reduced.column_nodes[j])
        if pair[0] != pair[1]:
            shipped[pair] = shipped.get(pair, 0.0) + allocation.value

    demand = {node.id: node.value for node in network.nodes.values() if node.type == "demand"}
    supply = {node.id: node.value for node in network.nodes.values() if node.type == "supply"}
    for booked, limits, downstream in ((unmet, demand, True), (unshipped, supply, False)):
        for node_id, amount in list(booked.items()):
            excess = amount - limits.get(node_id, 0.0)
            if excess <= tolerance:
                continue
            booked[node_id] = amount - excess
            logger.debug(
                "Cancelling dummy flow on buffered node",
                extra={"node": node_id, "excess": excess, "downstream": downstream},
            )
            _withdraw(shipped, node_id, excess, downstream, booked, limits, tolerance)
    for booked in (unmet, unshipped):
        for node_id in [key for key, amount in booked.items() if amount <= tolerance]:
            del booked[node_id]

    flows = {pair: flow for pair, flow in shipped.items() if flow > tolerance}
    links = tuple(
        Link(link.source, link.target, link.cost, flows[(link.source, link.target)])
        for link in network.links
        if (link.source, link.target) in flows
    )
    unlinked_links = tuple(
        Link(source, target, SENTINEL_COST, flow)
        for (source, target), flow in flows.items()
        if (source, target) not in link_costs
    )
    if unlinked_links:
        logger.warning(
            "Solution ships flow over node pairs without a link",
            extra={"pairs": [(link.source, link.target, link.flow) for link in unlinked_links]},
        )

    # Forwarded units: what a node receives beyond the demand it actually keeps.
    transshipped: dict[str, float] = {}
    for node_id in reduced.forwarding:
        received = math.fsum(flow for (_, target), flow in flows.items() if target == node_id)
        forwarded = received - (demand.get(node_id, 0.0) - unmet.get(node_id, 0.0))
        transshipped[node_id] = forwarded if forwarded > tolerance else 0.0

    return TransshipmentSolution(
        links=links,
        total_cost=math.fsum(link.cost * link.flow for link in links),
        transshipped=transshipped,
        unlinked_flows=unlinked_links,
        unmet_demand=unmet,
        unshipped_supply=unshipped,
    )


def _check_matrix(costs: Sequence[Sequence[float]], rows: int, columns: int, label: str) -> None:
    if len(costs) != rows or any(len(row) != columns for row in costs):
        raise InvalidProblemError(
            f"{label} cost matrix must be {rows}x{columns}, got {len(costs)} rows with lengths "
            f"{[len(row) for row in costs]}."
        )


def build_dedicated_transshipment(
    supply: Sequence[float],
    demand: Sequence[float],
    transshipment_count: int,
    costs: Sequence[Sequence[float]],
) -> TransshipmentProblem:
    """Build a dedicated-node network from a raw cost matrix.

    Nodes are named ``S1..``, ``D1..`` and ``T1..``. The matrix has one row per supply
    node followed by one per transshipment node, and one column per demand node
    followed by one per transshipment node. Costs at or above ``SENTINEL_COST`` mean
    "no link"; a transshipment node's own cell is ignored.
    """
    if transshipment_count < 0:
        raise InvalidProblemError(
            f"transshipment_count must be >= 0, got {transshipment_count}."
        )
    _check_matrix(
        costs,
        len(supply) + transshipment_count,
        len(demand) + transshipment_count,
        "Dedicated transshipment",
    )
    sources = [Node(f"S{i + 1}", "supply", float(value)) for i, value in enumerate(supply)]
    sinks = [Node(f"D{j + 1}", "demand", float(value)) for j, value in enumerate(demand)]
    hubs = [Node(f"T{k + 1}", "transshipment") for k in range(transshipment_count)]
    row_nodes = sources + hubs
    column_nodes = sinks + hubs

    links: list[Link] = []
    for i, row in enumerate(costs):
        for j, cost in enumerate(row):
            if row_nodes[i].id == column_nodes[j].id or float(cost) >= SENTINEL_COST:
                continue
            links.append(Link(row_nodes[i].id, column_nodes[j].id, float(cost)))

    problem = TransshipmentProblem(
        nodes={node.id: node for node in sources + sinks + hubs}, links=links
    )
    problem.validate()
    return problem


def build_mixed_transshipment(
    supply: Sequence[float],
    demand: Sequence[float],
    costs: Sequence[Sequence[float]],
    transshipment_indices: Iterable[int] | None = None,
) -> TransshipmentProblem:
    """Build a mixed network where supply and demand nodes may forward flow.

    Nodes ``S1..`` take indices ``0..len(supply)-1`` and nodes ``D1..`` the indices
    after them. ``costs`` is the square node-to-node matrix over those indices; costs
    at or above ``SENTINEL_COST`` mean "no link" and the diagonal is ignored.
    ``transshipment_indices`` selects the nodes that may forward (default: all).
    """
    sources = [Node(f"S{i + 1}", "supply", float(value)) for i, value in enumerate(supply)]
    sinks = [Node(f"D{j + 1}", "demand", float(value)) for j, value in enumerate(demand)]
    ordered = sources + sinks
    size = len(ordered)
    _check_matrix(costs, size, size, "Mixed transshipment")

    links: list[Link] = []
    for a, row in enumerate(costs):
        for b, cost in enumerate(row):
            if a == b or float(cost) >= SENTINEL_COST:
                continue
            links.append(Link(ordered[a].id, ordered[b].id, float(cost)))

    forwarding = None
    if transshipment_indices is not None:
        ids = []
        for index in transshipment_indices:
            if not 0 <= index < size:
                raise InvalidProblemError(
                    f"Transshipment index {index} is out of range for {size} nodes."
                )
            ids.append(ordered[index].id)
        forwarding = tuple(ids)

    problem = TransshipmentProblem(
        nodes={node.id: node for node in ordered}, links=links, transshipment_ids=forwarding
    )
    problem.validate()
    return problem


@dataclass(frozen=True)
class TransshipmentResult:
    """Outcome of :func:`transport_solver.solve_transshipment`.

    Attributes:
        reduced: The reduction (matrix layout, buffer, balancing metadata).
        transport: Result of solving the reduced transportation problem.
        solution: The transport solution mapped back onto the network's links.
    """

    reduced: ReducedProblem
    transport: TransportResult
    solution: TransshipmentSolution

    @property
    def total_cost(self) -> float:
        return self.solution.total_cost
