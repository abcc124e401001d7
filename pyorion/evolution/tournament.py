"""
Tournament: the evolutionary loop.

Each round every candidate generates a probe set, the probes are executed
(or, without an executor, judged by whether they rendered at all), the
scorer ranks the candidates and the breeder builds the next generation.
"""
import logging
import random
from pathlib import Path
from typing import List, Optional, Sequence

from pyorion.config import OrionConfig
from pyorion.core.grammar import WeightedGrammar
from pyorion.core.universe import Universe
from pyorion.core.weights import write_weights
from pyorion.evolution.breeder import Breeder
from pyorion.evolution.candidate import Candidate
from pyorion.evolution.scoring import ExemplarDistanceScorer, Scorer

logger = logging.getLogger(__name__)


class Tournament:
    def __init__(self, prototype: WeightedGrammar, config: Optional[OrionConfig] = None,
                 universe: Optional[Universe] = None, scorer: Optional[Scorer] = None,
                 executor=None, initial_weights: Optional[Sequence[int]] = None):
        self.config = config or OrionConfig()
        self.rng = random.Random(self.config.seed)
        self.prototype = prototype
        self.universe = universe
        self.scorer = scorer or ExemplarDistanceScorer(special_codes=self.config.special_codes)
        self.executor = executor
        self.initial_weights = list(initial_weights) if initial_weights is not None else None
        self.breeder = Breeder(prototype, self.config, universe, self.rng)
        self.winner: Optional[Candidate] = None
        self.history: List[Candidate] = []

    def initial_population(self) -> List[Candidate]:
        population = [self.breeder.spawn(self.initial_weights)
                      for _ in range(self.config.population)]
        self.breeder.mutate_generation(population, force=True)
        return population

    def play_round(self, round_no: int, population: Sequence[Candidate]) -> List[Candidate]:
        """Probe, execute and score ``population``; returns it ranked best first."""
        for c in population:
            c.reset_results()
            probes = c.probe_set(self.config.probe_count, round_no, self.rng,
                                 self.config.work_dir, self.config.save_files)
            if self.executor is not None:
                stats = self.executor.run(p.probe_text for p in probes)
                c.record_results(stats.outcomes)
            else:
                c.record_results(Candidate.generation_outcomes(probes))

        self.scorer.score_all(population)
        ranked = sorted(population, key=lambda c: c.score, reverse=True)
        best = ranked[0]
        self.history.append(best)
        if self.winner is None or best.score >= self.winner.score:
            self.winner = best
        logger.info("Round %d winner: candidate %d score %f results %s",
                    round_no, best.id, best.score, dict(best.results))
        return ranked

    def run(self) -> Candidate:
        population = self.initial_population()
        for round_no in range(1, self.config.rounds + 1):
            ranked = self.play_round(round_no, population)
            if round_no < self.config.rounds:
                population = self.breeder.breed(ranked)

        if self.config.save_files and self.winner is not None:
            path = Path(self.config.work_dir) / "winner.weights"
            write_weights(self.winner.grammar, str(path))
        return self.winner
