"""
matcher.py — most likely legal puzzle state from sticker confidences
====================================================================

`Matcher(puzzle).most_likely(confidences)` resolves one confidence vector per
sticker slot into a single group element and an aggregate confidence.

How it works
------------
Pieces never leave their orbit, so each orbit (corners, edges, ...) is an
independent assignment problem: *position* `i` (where piece `i` sits when
solved) must receive some piece `j` in some orientation `o`. With `P_i` the
stickers of piece `i` in orientation order, that placement shows the color of
`P_j[n]` at slot `P_i[(n + o) % r]`, and its score is

    sum_n log max(confidence[P_i[(n + o) % r]][color(P_j[n])], CONFIDENCE_FLOOR)

The edge weight of (i, j) is the best orientation's score; pieces with a
different sticker count than the position are forbidden. The per-orbit optimum
is a maximum-weight matching (`hungarian.maximum_matching`).

The optimum is not always a legal state (a corner twist or a permutation parity
that no sequence of moves produces). Candidates are therefore enumerated per
orbit in descending score order from

* Murty k-best assignments: the matching re-solved with edges forced/forbidden,
* orientation changes of every such assignment, enumerated best-first one
  position at a time so that states needing several reorientations are reached,

keeping only members of the orbit's own subgroup. Orbit candidates are then
combined best-first and the first combination that belongs to the full group
is returned. If the budgets run out, or some orbit has no feasible assignment
at all, the result is `None`: the matcher never returns an unvalidated state.

Aggregate confidence: geometric mean over all orbit slots of
`confidence(slot, shown color) / sum_c confidence(slot, c)`, clamped to [0, 1].

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from app_types import ConfigurationError
from config import CONFIDENCE_FLOOR, MAX_COMBINATIONS, MAX_ORBIT_CANDIDATES, MAX_ORBIT_EXPANSIONS
from hungarian import maximum_matching
from puzzle import Orbit, Permutation, PermutationGroup

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# (score, slot -> comes_from) restricted to the orbit's stickers
OrbitCandidate = Tuple[float, Dict[int, int]]


class _OrbitModel:
    """Static per-orbit data: piece stickers, the color lookup table and the subgroup."""

    def __init__(self, puzzle: PermutationGroup, orbit: Orbit):
        self.orbit = orbit
        self.group = puzzle.orbit_group(orbit)
        self.pieces: List[Tuple[int, ...]] = [p.stickers for p in orbit.pieces]
        colors = puzzle.facelet_colors()

        # (orientation index, color) -> pieces showing `color` on that sticker when solved
        self.by_color: Dict[Tuple[int, str], List[int]] = {}
        for j, stickers in enumerate(self.pieces):
            for n, s in enumerate(stickers):
                self.by_color.setdefault((n, colors[s]), []).append(j)

    def __len__(self) -> int:
        return len(self.pieces)

    def orientation_scores(self, log_conf: Mapping[int, Mapping[str, float]]) -> List[List[Optional[List[float]]]]:
        """scores[i][j][o]: log-likelihood of piece j at position i in orientation o (None if impossible)."""
        m = len(self.pieces)
        scores: List[List[Optional[List[float]]]] = [[None] * m for _ in range(m)]
        for i, position in enumerate(self.pieces):
            r = len(position)
            per_piece: Dict[int, List[float]] = {}
            for o in range(r):
                for n in range(r):
                    slot_conf = log_conf[position[(n + o) % r]]
                    for (k, color), pieces in self.by_color.items():
                        if k != n:
                            continue
                        for j in pieces:
                            if len(self.pieces[j]) != r:
                                continue
                            per_piece.setdefault(j, [0.0] * r)[o] += slot_conf[color]
            for j, row in per_piece.items():
                scores[i][j] = row
        return scores

    def placement(self, assignment: Sequence[int], orientations: Sequence[int]) -> Dict[int, int]:
        mapping: Dict[int, int] = {}
        for i, (j, o) in enumerate(zip(assignment, orientations)):
            position, piece = self.pieces[i], self.pieces[j]
            r = len(position)
            for n in range(r):
                mapping[position[(n + o) % r]] = piece[n]
        return mapping

    def is_valid(self, mapping: Dict[int, int], degree: int) -> bool:
        full = list(range(degree))
        for slot, source in mapping.items():
            full[slot] = source
        return self.group.stabilizer_chain().contains(full)


class _OrbitSearch:
    """Lazy best-first enumeration of one orbit's valid candidates."""

    def __init__(self,
                 model: _OrbitModel,
                 log_conf: Mapping[int, Mapping[str, float]],
                 degree: int,
                 max_candidates: int,
                 max_expansions: int):
        self.model = model
        self.degree = degree
        self.max_candidates = max_candidates
        self.max_expansions = max_expansions
        self.candidates: List[OrbitCandidate] = []
        self.expansions = 0

        self._scores = model.orientation_scores(log_conf)
        m = len(model)
        self._weights: List[List[Optional[float]]] = [
            [max(self._scores[i][j]) if self._scores[i][j] is not None else None for j in range(m)]
            for i in range(m)
        ]
        self._best_ori: List[List[int]] = [
            [int(np.argmax(self._scores[i][j])) if self._scores[i][j] is not None else 0 for j in range(m)]
            for i in range(m)
        ]
        self._heap: list = []
        self._counter = itertools.count()
        self._seen = set()

        root = self._solve(frozenset(), frozenset())
        if root is not None:
            self._push_assignment(root, frozenset(), frozenset())

    def _solve(self, forced, forbidden) -> Optional[Tuple[float, Tuple[int, ...]]]:
        m = len(self.model)
        rows = dict(forced)
        cols = {j: i for i, j in forced}
        costs = []
        for i in range(m):
            row = []
            for j in range(m):
                w = self._weights[i][j]
                if (w is None or (i, j) in forbidden
                        or (i in rows and rows[i] != j) or (j in cols and cols[j] != i)):
                    row.append(None)
                else:
                    row.append(w)
            costs.append(row)
        assignment = maximum_matching(costs)
        if assignment is None:
            return None
        return sum(self._weights[i][j] for i, j in enumerate(assignment)), tuple(assignment)

    def _push_assignment(self, solved, forced, forbidden) -> None:
        score, assignment = solved
        heapq.heappush(self._heap, (-score, next(self._counter), "assignment", (assignment, forced, forbidden)))

    def _push_variants(self, assignment, orientations, score, start) -> None:
        """Queue every single-position orientation change at positions >= `start`."""
        for i in range(start, len(assignment)):
            j = assignment[i]
            current = orientations[i]
            for o, s in enumerate(self._scores[i][j]):
                if o == current:
                    continue
                ori = orientations[:i] + (o,) + orientations[i + 1:]
                child = score - self._scores[i][j][current] + s
                heapq.heappush(self._heap, (-child, next(self._counter), "variant", (assignment, ori, i)))

    def _expand(self, assignment, forced, forbidden) -> Tuple[int, ...]:
        """Queue orientation variants and Murty children; returns the best orientations."""
        base_ori = tuple(self._best_ori[i][j] for i, j in enumerate(assignment))
        base_score = sum(self._weights[i][j] for i, j in enumerate(assignment))
        self._push_variants(assignment, base_ori, base_score, 0)

        forced_rows = {i for i, _ in forced}
        fixed = set(forced)
        for i, j in enumerate(assignment):
            if i in forced_rows:
                continue
            child_forbidden = forbidden | {(i, j)}
            child_forced = frozenset(fixed)
            solved = self._solve(child_forced, child_forbidden)
            if solved is not None:
                self._push_assignment(solved, child_forced, frozenset(child_forbidden))
            fixed.add((i, j))
        return base_ori

    def get(self, index: int) -> Optional[OrbitCandidate]:
        while len(self.candidates) <= index:
            if not self._advance():
                return None
        return self.candidates[index]

    def _advance(self) -> bool:
        if len(self.candidates) >= self.max_candidates:
            return False
        while self._heap and self.expansions < self.max_expansions:
            neg_score, _, kind, payload = heapq.heappop(self._heap)
            self.expansions += 1
            if kind == "assignment":
                assignment, forced, forbidden = payload
                orientations = self._expand(assignment, forced, forbidden)
            else:
                assignment, orientations, changed = payload
                # each orientation vector is reached once: changes are made in increasing position order
                self._push_variants(assignment, orientations, -neg_score, changed + 1)
            key = (assignment, orientations)
            if key in self._seen:
                continue
            self._seen.add(key)
            mapping = self.model.placement(assignment, orientations)
            if self.model.is_valid(mapping, self.degree):
                self.candidates.append((-neg_score, mapping))
                return True
        return False


class Matcher:
    def __init__(self,
                 puzzle: PermutationGroup,
                 max_orbit_candidates: int = MAX_ORBIT_CANDIDATES,
                 max_combinations: int = MAX_COMBINATIONS,
                 max_orbit_expansions: int = MAX_ORBIT_EXPANSIONS,
                 confidence_floor: float = CONFIDENCE_FLOOR):
        self.puzzle = puzzle
        self.max_orbit_candidates = max_orbit_candidates
        self.max_combinations = max_combinations
        self.max_orbit_expansions = max_orbit_expansions
        self.confidence_floor = confidence_floor
        self._orbits = [_OrbitModel(puzzle, orbit) for orbit in puzzle.orbits()]
        self._colors = puzzle.colors()

    def _log_confidences(self, confidences) -> Dict[int, Dict[str, float]]:
        floor = self.confidence_floor
        return {
            slot: {c: math.log(max(float(vec.get(c, 0.0)), floor)) for c in self._colors}
            for slot, vec in enumerate(confidences)
        }

    def most_likely(self, confidences: Sequence[Mapping[str, float]]) -> Optional[Tuple[Permutation, float]]:
        degree = self.puzzle.facelet_count()
        if len(confidences) != degree:
            raise ConfigurationError(f"{len(confidences)} confidence vectors for {degree} stickers")

        log_conf = self._log_confidences(confidences)
        searches = [
            _OrbitSearch(model, log_conf, degree, self.max_orbit_candidates, self.max_orbit_expansions)
            for model in self._orbits
        ]
        for search in searches:
            if search.get(0) is None:
                logger.warning("No feasible assignment for orbit %s", search.model.orbit.name)
                return None

        chain = self.puzzle.stabilizer_chain()
        start = (0,) * len(searches)
        heap = [(-sum(s.get(0)[0] for s in searches), start)]
        seen = {start}
        tried = 0
        while heap and tried < self.max_combinations:
            _, combo = heapq.heappop(heap)
            tried += 1

            mapping = list(range(degree))
            for search, k in zip(searches, combo):
                for slot, source in search.get(k)[1].items():
                    mapping[slot] = source
            perm = Permutation(mapping)
            if chain.contains(perm):
                if tried > 1:
                    logger.info("Best orbit assignments were not a legal state; "
                                "resolved after %d combinations", tried)
                return perm, self.confidence(perm, confidences)

            for n, search in enumerate(searches):
                nxt = combo[:n] + (combo[n] + 1,) + combo[n + 1:]
                if nxt in seen or search.get(nxt[n]) is None:
                    continue
                seen.add(nxt)
                score = sum(s.get(k)[0] for s, k in zip(searches, nxt))
                heapq.heappush(heap, (-score, nxt))

        logger.warning("No legal state found after %d combinations", tried)
        return None

    def confidence(self, perm: Permutation, confidences: Sequence[Mapping[str, float]]) -> float:
        colors = self.puzzle.facelet_colors()
        slots = [s for model in self._orbits for s in model.orbit.stickers]
        if not slots:
            return 1.0
        total = 0.0
        for slot in slots:
            vec = confidences[slot]
            norm = sum(float(vec.get(c, 0.0)) for c in self._colors)
            shown = float(vec.get(colors[perm.comes_from(slot)], 0.0))
            ratio = shown / norm if norm > 0 else 0.0
            total += math.log(max(ratio, self.confidence_floor))
        return min(1.0, max(0.0, math.exp(total / len(slots))))
