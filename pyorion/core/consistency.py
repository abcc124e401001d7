"""
Consistency analysis for weighted grammars.

For a grammar with nonterminals N and rules R two matrices are derived:

* ``Q`` (N x R): Q[i, r] is the probability that nonterminal i expands with
  rule r, i.e. weight(r) / total(i).
* ``C`` (R x N): C[r, j] counts the occurrences of nonterminal j on the right
  hand side of rule r.

``A = Q @ C`` gives the expected number of nonterminal-j instances produced by
one expansion of nonterminal i. The grammar produces finite derivations on
average iff the spectral radius of A is below 1.
"""
import logging
import math
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from pyorion.core.grammar import WeightedGrammar

logger = logging.getLogger(__name__)

__all__ = [
    "GrammarMatrices",
    "RepairReport",
    "is_nilpotent",
    "spectral_radius",
    "ConsistencyAnalyzer",
]


@dataclass
class GrammarMatrices:
    q: np.ndarray
    c: np.ndarray
    a: np.ndarray


@dataclass
class RepairReport:
    """Outcome of validate_and_repair."""
    radius: float
    within_bound: bool
    attempts: int
    weights: List[int]


def is_nilpotent(a: np.ndarray) -> bool:
    """True when some power of ``a`` is zero, i.e. its graph has no cycle.

    Only the sparsity pattern matters, so the pattern is squared until the
    exponent reaches the matrix size.
    """
    n = a.shape[0]
    pattern = (a > 0).astype(float)
    for _ in range((n - 1).bit_length() if n else 0):
        pattern = ((pattern @ pattern) > 0).astype(float)
    return not np.any(pattern)


def spectral_radius(a: np.ndarray, tolerance: float = 1e-10,
                    max_iterations: int = 100000,
                    nilpotent: Optional[bool] = None) -> float:
    """Dominant eigenvalue of a nonnegative square matrix by power iteration.

    The iteration runs on ``A + I``. Its dominant eigenvalue is rho(A) + 1 and
    the shift makes every irreducible block aperiodic, so the growth ratio
    converges even for cyclic matrices. Callers that already know whether
    ``a`` is nilpotent pass ``nilpotent`` to skip that check.
    """
    n = a.shape[0]
    if n == 0:
        return 0.0
    # Nilpotent (acyclic grammar): the shifted iteration would only creep
    # towards 1 here, so answer directly.
    if nilpotent is None:
        nilpotent = is_nilpotent(a)
    if nilpotent:
        return 0.0
    shifted = a + np.eye(n)
    x = np.full(n, 1.0 / n)
    estimate = 0.0
    for _ in range(max_iterations):
        y = shifted @ x
        total = float(y.sum())
        if total == 0.0:
            return 0.0
        if abs(total - estimate) <= tolerance * max(1.0, total):
            estimate = total
            break
        estimate = total
        x = y / total
    else:
        logger.debug("Power iteration stopped after %d iterations", max_iterations)
    return max(estimate - 1.0, 0.0)


class ConsistencyAnalyzer:
    """Derives matrices from a grammar and checks or repairs its weights."""

    HI_CUTOFF = 0.9
    LO_CUTOFF = 0.1
    SHRINKER = 0.99

    def __init__(self, grammar: WeightedGrammar, tolerance: float = 1e-10):
        self.grammar = grammar
        self.tolerance = tolerance

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def build_matrices(self) -> GrammarMatrices:
        g = self.grammar
        nt_cnt = g.nt_count
        rule_cnt = g.rule_count
        q = np.zeros((nt_cnt, rule_cnt))
        c = np.zeros((rule_cnt, nt_cnt))

        for row, nt in enumerate(g.nonterminals()):
            total = float(g.total_weight(nt))
            for r in g.rule_indices(nt):
                q[row, r] = g.entry(r).weight / total

        for r, e in enumerate(g.entries):
            for s in e.rule.rhs:
                if g.is_nonterminal(s):
                    c[r, g.nt_index(s)] += 1

        return GrammarMatrices(q=q, c=c, a=q @ c)

    def spectral_radius(self) -> float:
        return spectral_radius(self.build_matrices().a, self.tolerance)

    def is_consistent(self, max_radius: float = 1.0) -> bool:
        return self.spectral_radius() < max_radius

    # ------------------------------------------------------------------
    # Adjustment and repair
    # ------------------------------------------------------------------

    def adjust_weights(self, target_top: float) -> None:
        """Rescale every nonterminal's weights so that its largest is target_top.

        All-zero groups become uniform; every weight is floored at 1% of the
        target.
        """
        g = self.grammar
        weights = g.to_weights()
        top = float(target_top)
        lowest = max(int(math.ceil(0.01 * top)), 1)
        for nt in g.nonterminals():
            rules = g.rule_indices(nt)
            if len(rules) == 1:
                weights[rules[0]] = int(round(top))
                continue
            biggest = max(weights[i] for i in rules)
            if biggest <= 0:
                for i in rules:
                    weights[i] = int(round(top))
                continue
            ratio = top / biggest
            for i in rules:
                weights[i] = max(int(round(weights[i] * ratio)), lowest)
        g.set_weights(weights)

    def _repair_pairs(self, a: np.ndarray) -> List[Tuple[int, int]]:
        g = self.grammar
        pairs = []
        for i, nt in enumerate(g.nonterminals()):
            if len(g.rule_indices(nt)) == 1:
                continue
            for j in np.nonzero(a[i])[0]:
                pairs.append((i, int(j)))
        return pairs

    def validate_and_repair(self, weights: Optional[Sequence[int]], target_top: float,
                            max_radius: float = 1.0, max_attempts: int = 20000,
                            rng: Optional[random.Random] = None,
                            adjust: bool = True) -> RepairReport:
        """Import ``weights``, normalise them and lower recursive weights
        until the spectral radius is under ``max_radius``.

        Each attempt picks a random nonzero entry A[i, j] of a nonterminal with
        more than one rule, finds the rule of i contributing most to it and
        shrinks that rule's weight. Attempts that raise the radius are rolled
        back and make the next shrink stronger; improvements relax it again.
        """
        g = self.grammar
        rng = rng or random.Random()
        if weights is not None:
            g.set_weights(weights, require_positive=False)
        self.adjust_weights(target_top)

        radius = self.spectral_radius()
        logger.info("Grammar is %sconsistent; radius = %f",
                    "in" if radius >= 1.0 else "", radius)
        if radius < max_radius:
            return RepairReport(radius, True, 0, g.to_weights())

        logger.info("Grammar radius %f > bound %f", radius, max_radius)
        if not adjust:
            return RepairReport(radius, False, 0, g.to_weights())

        m = self.build_matrices()
        q, c, a = m.q, m.c, m.a
        pairs = self._repair_pairs(a)
        if not pairs:
            logger.warning("No adjustable rules; radius %f stays over bound", radius)
            return RepairReport(radius, False, 0, g.to_weights())

        # A is over the bound, so it has a cycle, and repair keeps its
        # sparsity pattern: no attempt below needs the nilpotency check.
        old_radius = radius
        shrink = self.HI_CUTOFF
        for attempt in range(1, max_attempts + 1):
            left, right = rng.choice(pairs)
            left_sym = g.symbol_at(left)
            rule_ids = g.rule_indices(left_sym)

            products = q[left, :] * c[:, right]
            contributing = [r for r in rule_ids if products[r] != 0.0]
            worst = max(contributing, key=lambda r: (products[r], r))

            old_weight = g.entry(worst).weight
            old_q_row = q[left, :].copy()
            old_a_row = a[left, :].copy()

            g.set_rule_weight(worst, max(int(math.ceil(old_weight * shrink)), 1))
            total = float(g.total_weight(left_sym))
            for r in rule_ids:
                q[left, r] = g.entry(r).weight / total
            a[left, :] = q[left, :] @ c
            radius = spectral_radius(a, self.tolerance, nilpotent=False)

            if radius < max_radius:
                snapshot = g.to_weights()
                self.adjust_weights(target_top)
                adjusted = self.spectral_radius()
                if adjusted < max_radius:
                    radius = adjusted
                else:
                    g.set_weights(snapshot)
                logger.info("Grammar weights under bound %f after %d attempts; "
                            "new spectral radius = %f", max_radius, attempt, radius)
                return RepairReport(radius, True, attempt, g.to_weights())

            if radius > old_radius:
                shrink = max(self.LO_CUTOFF, shrink * self.SHRINKER)
                g.set_rule_weight(worst, old_weight)
                q[left, :] = old_q_row
                a[left, :] = old_a_row
                direction = "Regress"
            else:
                old_radius = radius
                shrink = min(self.HI_CUTOFF, (shrink + self.HI_CUTOFF) / 2.0)
                direction = "Improve"

            if attempt % 1000 == 0:
                logger.info("%d: %s radius = %f; shrink = %f",
                            attempt, direction, old_radius, shrink)

        logger.warning("Weight repair incomplete after %d attempts; radius = %f",
                       max_attempts, old_radius)
        return RepairReport(old_radius, False, max_attempts, g.to_weights())
