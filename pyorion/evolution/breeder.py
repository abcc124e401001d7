"""
Genetic breeder for grammar weight vectors.

Two gene granularities are supported for both mutation and crossover:

* ``rule``: one rule's weight is a gene.
* ``nt``: the weights of all rules of one nonterminal form a gene.

Every operator is retried until the Consistency Analyzer accepts the
result; a rejected attempt is rolled back to the last consistent vector
before the next one. When no attempt is accepted the candidate keeps its
original weights.
"""
import itertools
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from pyorion.config import OrionConfig
from pyorion.core.consistency import ConsistencyAnalyzer
from pyorion.core.grammar import WeightedGrammar
from pyorion.core.universe import Universe
from pyorion.evolution.candidate import Candidate

logger = logging.getLogger(__name__)

RULE_MUTATION_FRACTION = 0.05
NT_MUTATION_FRACTION = 0.1
NOISE_SIGMA = 0.1


@dataclass
class MutationOutcome:
    candidate: Candidate
    changed: bool
    attempts: int
    reason: Optional[str] = None


class Breeder:
    """Builds new generations from scored candidates."""

    def __init__(self, prototype: WeightedGrammar, config: Optional[OrionConfig] = None,
                 universe: Optional[Universe] = None, rng: Optional[random.Random] = None):
        self.prototype = prototype
        self.config = config or OrionConfig()
        self.universe = universe
        self.rng = rng or random.Random(self.config.seed)
        self._ids = itertools.count(1)

    @property
    def retries(self) -> int:
        return max(self.config.population, 1)

    def spawn(self, weights: Optional[Sequence[int]] = None,
              parents: tuple = ()) -> Candidate:
        grammar = self.prototype.copy()
        if weights is not None:
            grammar.set_weights(weights)
        return Candidate(next(self._ids), grammar, self.universe,
                         self.config.start_symbol, parents)

    def _is_consistent(self, candidate: Candidate) -> bool:
        return ConsistencyAnalyzer(candidate.grammar).is_consistent(self.config.max_radius)

    def _perturb(self, weight: int) -> int:
        return max(int(weight * self.rng.gauss(1.0, NOISE_SIGMA)), 1)

    def _retry(self, candidate: Candidate, operator: Callable[[WeightedGrammar], None],
               label: str) -> MutationOutcome:
        grammar = candidate.grammar
        last_good = grammar.to_weights()
        for attempt in range(1, self.retries + 1):
            operator(grammar)
            if self._is_consistent(candidate):
                return MutationOutcome(candidate, True, attempt)
            grammar.set_weights(last_good)
        reason = f"{label} found no consistent weights in {self.retries} attempts"
        logger.info("Candidate %d: %s", candidate.id, reason)
        return MutationOutcome(candidate, False, self.retries, reason)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _mutate_rule_weights(self, grammar: WeightedGrammar) -> None:
        weights = grammar.to_weights()
        count = max(1, int(len(weights) * RULE_MUTATION_FRACTION))
        for i in self.rng.sample(range(len(weights)), count):
            weights[i] = self._perturb(weights[i])
        grammar.set_weights(weights)

    def _mutate_nt_weights(self, grammar: WeightedGrammar) -> None:
        count = int(math.ceil(grammar.nt_count * NT_MUTATION_FRACTION))
        for nt in self.rng.sample(grammar.nonterminals(), count):
            gene = grammar.project_nt(nt)
            gene.weights = [self._perturb(w) for w in gene.weights]
            grammar.update_nt(gene)

    def mutate_rules(self, candidate: Candidate) -> MutationOutcome:
        return self._retry(candidate, self._mutate_rule_weights, "rule mutation")

    def mutate_nts(self, candidate: Candidate) -> MutationOutcome:
        return self._retry(candidate, self._mutate_nt_weights, "nonterminal mutation")

    def mutate(self, candidate: Candidate) -> MutationOutcome:
        if self.config.mutation == "rule":
            return self.mutate_rules(candidate)
        return self.mutate_nts(candidate)

    def mutate_generation(self, candidates: Sequence[Candidate], rate: Optional[float] = None,
                          force: bool = False) -> List[MutationOutcome]:
        """Mutate each candidate with probability ``rate`` (all when ``force``)."""
        rate = self.config.mutation_rate if rate is None else rate
        outcomes = []
        for c in candidates:
            if force or self.rng.random() < rate:
                outcomes.append(self.mutate(c))
        failed = sum(1 for o in outcomes if not o.changed)
        logger.debug("Mutated %d of %d candidates (%d unchanged)",
                     len(outcomes), len(candidates), failed)
        return outcomes

    # ------------------------------------------------------------------
    # Crossover
    # ------------------------------------------------------------------

    def _cross_rules(self, grammar: WeightedGrammar, donor: WeightedGrammar) -> None:
        n = grammar.rule_count
        swap_len = int(self.rng.gauss(0.5, NOISE_SIGMA) * n)
        swap_len = min(max(swap_len, 1), max(n // 2, 1))
        start = self.rng.randrange(n)
        weights = grammar.to_weights()
        donor_weights = donor.to_weights()
        for k in range(swap_len):
            i = (start + k) % n
            weights[i] = donor_weights[i]
        grammar.set_weights(weights)

    def _cross_nts(self, grammar: WeightedGrammar, donor: WeightedGrammar) -> None:
        count = min(grammar.nt_count, grammar.nt_count // 2 + 1)
        for nt in self.rng.sample(grammar.nonterminals(), count):
            grammar.update_nt(donor.project_nt(nt))

    def crossover(self, mother: Candidate, father: Candidate) -> MutationOutcome:
        """A child of ``mother`` carrying genes copied from ``father``."""
        child = self.spawn(mother.weights, parents=(mother.id, father.id))
        if self.config.crossover == "rule":
            op = lambda g: self._cross_rules(g, father.grammar)
        else:
            op = lambda g: self._cross_nts(g, father.grammar)
        return self._retry(child, op, "crossover")

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @staticmethod
    def fitness_vector(ranked: Sequence[Candidate]) -> List[Candidate]:
        """Candidate i of an ascending ranking appears i times (1-based)."""
        return [c for i, c in enumerate(ranked, 1) for _ in range(i)]

    def _pick_father(self, mother: Candidate, fitness: Sequence[Candidate]) -> Candidate:
        if len({c.id for c in fitness}) < 2:
            return mother
        father = self.rng.choice(fitness)
        while father is mother:
            father = self.rng.choice(fitness)
        return father

    def breed(self, candidates: Sequence[Candidate], size: Optional[int] = None) -> List[Candidate]:
        """Assemble the next generation from scored ``candidates``."""
        size = self.config.population if size is None else size
        if not candidates:
            return [self.spawn() for _ in range(size)]

        ranked = sorted(candidates, key=lambda c: c.score)
        winner = ranked[-1]
        generation: List[Candidate] = []

        for c in ranked:
            if c.special and len(generation) < size:
                logger.info("Passing special candidate %d through", c.id)
                generation.append(self.spawn(c.weights, parents=(c.id,)))
        if not winner.special and len(generation) < size:
            generation.append(self.spawn(winner.weights, parents=(winner.id,)))

        fitness = self.fitness_vector(ranked)
        remaining = size - len(generation)
        copies = min(remaining, int(remaining * self.config.pass_through_fraction + 1))
        for _ in range(copies):
            c = self.rng.choice(fitness)
            generation.append(self.spawn(c.weights, parents=(c.id,)))

        while len(generation) < size:
            mother = self.rng.choice(fitness)
            father = self._pick_father(mother, fitness)
            generation.append(self.crossover(mother, father).candidate)

        self.mutate_generation(generation)
        logger.info("Bred %d candidates from %d; previous winner %d (score %f)",
                    len(generation), len(ranked), winner.id, winner.score)
        return generation
