"""
Tournament candidates.

A candidate is one grammar instance (shared rules, own weights) together
with the bookkeeping of the round it is playing: outcome counters from
executing its probes, production counts and the score it was given.
"""
from __future__ import annotations

import logging
import random
from collections import Counter
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple

from pyorion.core.derivation import DerivationEngine, GenerationResult
from pyorion.core.execution import OK
from pyorion.core.grammar import WeightedGrammar
from pyorion.core.universe import Universe

logger = logging.getLogger(__name__)

FALLBACK_OUTCOME = "fallback"


class Candidate:
    """One member of a tournament population."""

    def __init__(self, cid: int, grammar: WeightedGrammar,
                 universe: Optional[Universe] = None, start: Optional[str] = None,
                 parents: Tuple[int, ...] = ()):
        self.id = cid
        self.grammar = grammar
        self.universe = universe
        self.start = start
        self.parents = parents
        self.score = 0.0
        self.special = False
        self.results: Counter = Counter()
        self.production_counts: Counter = Counter()
        self.probe_file: Optional[Path] = None

    @property
    def weights(self) -> List[int]:
        return self.grammar.to_weights()

    def engine(self) -> DerivationEngine:
        return DerivationEngine(self.grammar, self.universe)

    def reset_results(self) -> None:
        self.score = 0.0
        self.special = False
        self.results.clear()
        self.production_counts.clear()
        self.probe_file = None

    def record_results(self, outcomes: Mapping[str, int]) -> None:
        self.results.update(outcomes)

    def probe_set(self, count: int, round_no: int, rng: random.Random,
                  work_dir: Optional[str] = None, save: bool = False) -> List[GenerationResult]:
        """Generate ``count`` probes, one seed per probe drawn from ``rng``.

        Production counts are merged into the candidate. With ``save`` the
        probes are written to ``<work_dir>/r<round>_c<id>.prb``.
        """
        engine = self.engine()
        probes = []
        for _ in range(count):
            result = engine.generate(self.start, rng.randrange(2 ** 31), count_productions=True)
            self.production_counts.update(result.production_counts)
            probes.append(result)

        if save and work_dir:
            path = Path(work_dir) / f"r{round_no}_c{self.id}.prb"
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                for p in probes:
                    f.write(p.probe_text + ";\n")
            self.probe_file = path
            logger.debug("Candidate %d wrote %d probes to %s", self.id, count, path)
        return probes

    @staticmethod
    def generation_outcomes(probes: Iterable[GenerationResult]) -> Counter:
        """Outcome counters when probes are not executed anywhere."""
        outcomes: Counter = Counter()
        for p in probes:
            outcomes[OK if p.success else FALLBACK_OUTCOME] += 1
        return outcomes

    def __repr__(self) -> str:
        return f"Candidate(id={self.id}, score={self.score:.4f}, special={self.special})"
