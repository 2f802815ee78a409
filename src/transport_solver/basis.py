"""Basis graph utilities for the transportation tableau.

Basic cells are viewed as edges of a bipartite graph whose nodes are the rows and
the columns of the cost matrix. A non-degenerate basis is a spanning tree of that
graph (m+n-1 edges, no loop). Pivot cycles and loop checks are graph walks over an
explicit row -> columns / column -> rows adjacency.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Iterable, Sequence

from .data import EPSILON, Allocation, Cell, TransportationProblem

logger = logging.getLogger(__name__)

ROW = 0
COLUMN = 1


class BasisGraph:
    """Row/column adjacency for a set of basic cells."""

    def __init__(self, rows: int, columns: int, cells: Iterable[Cell] = ()) -> None:
        self.rows = rows
        self.columns = columns
        self.row_adj: list[set[int]] = [set() for _ in range(rows)]
        self.col_adj: list[set[int]] = [set() for _ in range(columns)]
        self.edge_count = 0
        for row, column in cells:
            self.add(row, column)

    @classmethod
    def from_allocations(
        cls, allocations: Iterable[Allocation], shape: tuple[int, int]
    ) -> BasisGraph:
        return cls(shape[0], shape[1], (allocation.cell for allocation in allocations))

    def __len__(self) -> int:
        return self.edge_count

    def has(self, row: int, column: int) -> bool:
        return column in self.row_adj[row]

    def add(self, row: int, column: int) -> None:
        if column in self.row_adj[row]:
            return
        self.row_adj[row].add(column)
        self.col_adj[column].add(row)
        self.edge_count += 1

    def remove(self, row: int, column: int) -> None:
        if column not in self.row_adj[row]:
            return
        self.row_adj[row].discard(column)
        self.col_adj[column].discard(row)
        self.edge_count -= 1

    def connected(self, row: int, column: int) -> bool:
        """True if row ``row`` and column ``column`` are joined by a path of basic cells.

        Adding the cell ``(row, column)`` closes a loop exactly when this holds.
        """
        return self._path(row, column) is not None

    def path_cells(self, row: int, column: int) -> list[Cell] | None:
        """Cells on the shortest basic path from row ``row`` to column ``column``."""
        nodes = self._path(row, column)
        if nodes is None:
            return None
        cells: list[Cell] = []
        for (side, idx), (_, next_idx) in zip(nodes, nodes[1:]):
            cells.append((idx, next_idx) if side == ROW else (next_idx, idx))
        return cells

    def _path(self, row: int, column: int) -> list[tuple[int, int]] | None:
        # Breadth-first search so the loop through an entering cell is as short as possible.
        start = (ROW, row)
        goal = (COLUMN, column)
        parent: dict[tuple[int, int], tuple[int, int] | None] = {start: None}
        queue: deque[tuple[int, int]] = deque([start])
        while queue:
            node = queue.popleft()
            if node == goal:
                break
            side, idx = node
            if side == ROW:
                neighbours = [(COLUMN, j) for j in sorted(self.row_adj[idx])]
            else:
                neighbours = [(ROW, i) for i in sorted(self.col_adj[idx])]
            for neighbour in neighbours:
                if neighbour not in parent:
                    parent[neighbour] = node
                    queue.append(neighbour)

        if goal not in parent:
            return None
        path: list[tuple[int, int]] = []
        current: tuple[int, int] | None = goal
        while current is not None:
            path.append(current)
            current = parent[current]
        path.reverse()
        return path


def has_loop(cells: Iterable[Cell], shape: tuple[int, int]) -> bool:
    """Return True if the given cells contain a closed loop."""
    graph = BasisGraph(*shape)
    for row, column in cells:
        if graph.has(row, column) or graph.connected(row, column):
            return True
        graph.add(row, column)
    return False


def find_cycle(entering: Cell, graph: BasisGraph) -> list[Cell] | None:
    """Find the closed pivot loop through a non-basic ``entering`` cell.

    The loop starts at the entering cell and alternates between its row and column
    neighbours, so cells at even positions gain flow and cells at odd positions lose
    it. The simple rectangle (one basic cell in the entering row, one in the entering
    column, and a basic corner) is tried first; otherwise the general path through
    the basis graph is used.

    Returns:
        The cycle as a list of cells of even length >= 4, or None if the entering cell
        is not connected to the basis on both sides.
    """
    row, column = entering
    for other_column in sorted(graph.row_adj[row]):
        if other_column == column:
            continue
        for other_row in sorted(graph.col_adj[column]):
            if other_row == row:
                continue
            if graph.has(other_row, other_column):
                return [
                    entering,
                    (row, other_column),
                    (other_row, other_column),
                    (other_row, column),
                ]

    path = graph.path_cells(row, column)
    if path is None:
        return None
    cycle = [entering] + path
    if len(cycle) < 4 or len(cycle) % 2:
        return None
    return cycle


def repair_degeneracy(
    allocations: Sequence[Allocation],
    problem: TransportationProblem,
    epsilon: float = EPSILON,
) -> tuple[list[Allocation], list[Allocation]]:
    """Top up a degenerate basis with epsilon placeholders until it has m+n-1 cells.

    Repeatedly picks the cheapest unallocated cell (first in row-major order on ties)
    that does not close a loop with the current basic cells, and allocates ``epsilon``
    to it. Stops early if no such cell exists.

    Returns:
        ``(allocations, added)``: the completed allocation list (a new list) and the
        placeholders that were added.
    """
    rows, columns = problem.shape
    required = rows + columns - 1
    graph = BasisGraph.from_allocations(allocations, problem.shape)
    repaired = list(allocations)
    added: list[Allocation] = []

    while len(graph) < required:
        best: Cell | None = None
        best_cost = math.inf
        for i in range(rows):
            for j in range(columns):
                if graph.has(i, j):
                    continue
                cost = problem.cost(i, j)
                if cost < best_cost and not graph.connected(i, j):
                    best = (i, j)
                    best_cost = cost
        if best is None:
            logger.warning(
                "Degeneracy repair found no loop-free cell",
                extra={"basic_cells": len(graph), "required": required},
            )
            break
        placeholder = Allocation(best[0], best[1], epsilon, epsilon=True)
        repaired.append(placeholder)
        added.append(placeholder)
        graph.add(*best)

    return repaired, added
