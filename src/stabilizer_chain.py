"""
stabilizer_chain.py — Schreier–Sims stabilizer chain
====================================================

Incremental Schreier–Sims after Knuth ("Efficient representation of perm
groups", 1991). The base is simply 0, 1, ..., degree-1: level `k` holds the
subgroup fixing every point below `k`, a transversal `table[k][j]` (an element
mapping `k -> j`) and the strong generators that were sifted in at that level.

Permutations are plain tuples here, `p[x]` being the image of `x`, and
`_mult(p, q)` means "p, then q". Every group element factors uniquely as
`t_{n-1}, ..., t_1, t_0` (applied in that order) with one transversal element
per level, which is what makes both membership testing (`contains`) and uniform
sampling (`random`) cheap once the table is built.

Invariant after construction: for every level `k`, every transversal element
`t` and every strong generator `s` fixing the points below `k`, the product
`t, then s` sifts through levels `k..n-1`. Closure is driven by an explicit
work stack, so deep chains do not hit the interpreter recursion limit.

Membership is exact: there is no randomized shortcut in the construction.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from puzzle import Permutation

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Perm = Tuple[int, ...]


def _mult(p: Perm, q: Perm) -> Perm:
    return tuple([q[x] for x in p])


def _inv(p: Perm) -> Perm:
    r = [0] * len(p)
    for i, v in enumerate(p):
        r[v] = i
    return tuple(r)


class StabilizerChain:
    def __init__(self, degree: int, generators: Iterable[Sequence[int]]):
        self.degree = degree
        self._identity: Perm = tuple(range(degree))
        self._table: List[Dict[int, Perm]] = [{i: self._identity} for i in range(degree)]
        self._table_inv: List[Dict[int, Perm]] = [{i: self._identity} for i in range(degree)]
        self._strong: List[List[Perm]] = [[] for _ in range(degree)]
        self._pending: List[Tuple[int, Perm]] = []

        for gen in generators:
            gen = tuple(int(v) for v in gen)
            if len(gen) != degree:
                raise ValueError(f"Generator of degree {len(gen)} in a chain of degree {degree}")
            self._insert(0, gen)
            self._drain()

        logger.debug("Stabilizer chain of degree %d: order %d, %d strong generators",
                     degree, self.order(), sum(len(s) for s in self._strong))

    def _strip(self, level: int, perm: Perm) -> Tuple[int, Perm]:
        """Sift `perm` from `level` down. Returns (failing level or degree, residue)."""
        for k in range(level, self.degree):
            j = perm[k]
            if j == k:
                continue
            inverse = self._table_inv[k].get(j)
            if inverse is None:
                return k, perm
            perm = _mult(perm, inverse)
        return self.degree, perm

    def _insert(self, level: int, perm: Perm) -> None:
        level, residue = self._strip(level, perm)
        if level >= self.degree:
            return
        self._strong[level].append(residue)
        # every level at or above `level` contains the new generator
        for k in range(level + 1):
            for rep in list(self._table[k].values()):
                self._pending.append((k, _mult(rep, residue)))

    def _generators_from(self, level: int) -> List[Perm]:
        return [g for k in range(level, self.degree) for g in self._strong[k]]

    def _drain(self) -> None:
        while self._pending:
            level, perm = self._pending.pop()
            j = perm[level]
            inverse = self._table_inv[level].get(j)
            if inverse is not None:
                self._insert(level + 1, _mult(perm, inverse))
                continue
            self._table[level][j] = perm
            self._table_inv[level][j] = _inv(perm)
            for gen in self._generators_from(level):
                self._pending.append((level, _mult(perm, gen)))

    def contains(self, perm) -> bool:
        """Exact membership test. Accepts a `Permutation` or any int sequence."""
        mapping = tuple(getattr(perm, "mapping", perm))
        if len(mapping) != self.degree:
            return False
        level, _ = self._strip(0, mapping)
        return level >= self.degree

    def order(self) -> int:
        total = 1
        for level in self._table:
            total *= len(level)
        return total

    def random(self, rng: np.random.Generator) -> Permutation:
        """Uniformly random group element drawn with the supplied generator."""
        result = self._identity
        for k in range(self.degree - 1, -1, -1):
            level = self._table[k]
            if len(level) == 1:
                continue
            keys = sorted(level)
            rep = level[keys[int(rng.integers(len(keys)))]]
            result = _mult(result, rep)
        return Permutation(result)

    def base_orbit_sizes(self) -> List[int]:
        return [len(level) for level in self._table]
