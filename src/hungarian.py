"""
hungarian.py — maximum-weight perfect bipartite matching
========================================================

`maximum_matching(costs)` takes an n x n matrix (`costs[i][j]` is the weight of
pairing left vertex `i` with right vertex `j`, `None` when the pair is
forbidden) and returns `assignment` with `assignment[i] = j` for a perfect
matching of maximum total weight, or `None` when no perfect matching exists.

Primal-dual (Hungarian) method:

* potentials `u` (left) and `v` (right) always satisfy `u[i] + v[j] >= w[i][j]`;
  left potentials start at the largest finite weight, right ones at 0;
* an edge is *tight* when equality holds. Tightness is tracked in an explicit
  boolean matrix instead of being re-derived from float sums, so rounding can
  never make an edge flicker in and out of the equality subgraph;
* a BFS from every free left vertex over tight edges (left -> right on
  non-matching edges, right -> left on matching edges) either reaches a free
  right vertex, and the path is augmented, or it gets stuck;
* when stuck, potentials are relaxed by the minimum slack over edges leaving
  the visited set: visited left `u -= delta`, visited right `v += delta`. The
  edges attaining the minimum become tight and the search continues from them;
  edges from unvisited left to visited right stop being tight. If no finite
  edge leaves the visited set the matching is infeasible.

The minimum slack into every unvisited right vertex is kept up to date as left
vertices are visited, so a relaxation costs O(n) and the whole search O(n^3).
Forbidden edges never enter the matching nor any slack computation.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import math
from collections import deque
from typing import List, Optional, Sequence

Costs = Sequence[Sequence[Optional[float]]]


def maximum_matching(costs: Costs) -> Optional[List[int]]:
    n = len(costs)
    if n == 0:
        return []
    for row in costs:
        if len(row) != n:
            raise ValueError("cost matrix must be square")

    finite = [w for row in costs for w in row if w is not None]
    if not finite:
        return None
    top = max(finite)

    u = [top] * n
    v = [0.0] * n
    tight = [[w is not None and w == top for w in row] for row in costs]

    match_left: List[Optional[int]] = [None] * n
    match_right: List[Optional[int]] = [None] * n

    for _ in range(n):
        parent_right: List[Optional[int]] = [None] * n
        visited_right = [False] * n
        # number of positive relaxations done before each vertex was visited
        stamp_left: List[Optional[int]] = [None] * n
        stamp_right = [0] * n
        slack = [math.inf] * n
        slack_from: List[Optional[int]] = [None] * n
        relaxed = 0
        queue = deque()

        def visit_left(i):
            stamp_left[i] = relaxed
            queue.append(i)
            row = costs[i]
            for j in range(n):
                w = row[j]
                if visited_right[j] or w is None:
                    continue
                s = u[i] + v[j] - w
                if s < slack[j]:
                    slack[j] = s
                    slack_from[j] = i

        def visit_right(j, i):
            """Reach right vertex j from i. Returns j if it is free."""
            visited_right[j] = True
            stamp_right[j] = relaxed
            parent_right[j] = i
            k = match_right[j]
            if k is None:
                return j
            if stamp_left[k] is None:
                visit_left(k)
            return None

        for i in range(n):
            if match_left[i] is None:
                visit_left(i)

        end = None
        while end is None:
            while queue and end is None:
                i = queue.popleft()
                for j in range(n):
                    if visited_right[j] or not tight[i][j]:
                        continue
                    end = visit_right(j, i)
                    if end is not None:
                        break
            if end is not None:
                break

            open_right = [j for j in range(n) if not visited_right[j] and slack_from[j] is not None]
            if not open_right:
                return None
            delta = max(min(slack[j] for j in open_right), 0.0)

            for i in range(n):
                if stamp_left[i] is not None:
                    u[i] -= delta
            for j in range(n):
                if visited_right[j]:
                    v[j] += delta
            newly_tight = []
            for j in open_right:
                if slack[j] <= delta:
                    newly_tight.append(j)
                slack[j] -= delta
            if delta > 0:
                relaxed += 1

            for j in newly_tight:
                if visited_right[j]:
                    continue
                i = slack_from[j]
                tight[i][j] = True
                end = visit_right(j, i)
                if end is not None:
                    break

        _augment(end, parent_right, match_left, match_right)

        # an edge from a left vertex visited late (or never) to a right vertex
        # visited earlier lost tightness in every positive relaxation in between
        if relaxed:
            for i in range(n):
                si = relaxed if stamp_left[i] is None else stamp_left[i]
                for j in range(n):
                    if visited_right[j] and stamp_right[j] < si:
                        tight[i][j] = False

    return [j for j in match_left]


def _augment(end: int, parent_right, match_left, match_right) -> None:
    j = end
    while j is not None:
        i = parent_right[j]
        previous = match_left[i]
        match_left[i] = j
        match_right[j] = i
        j = previous
