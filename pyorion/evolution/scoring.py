"""
Scoring.

A scorer turns a candidate's outcome counters into one comparable number;
higher is better. The reference scorer measures how close a candidate's
outcome distribution is to the nearest of a set of exemplar distributions.
"""
import json
import logging
import math
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence

from pyorion.core.errors import ConfigurationError
from pyorion.core.execution import OK
from pyorion.evolution.candidate import Candidate

logger = logging.getLogger(__name__)

Distribution = Dict[str, float]


def normalize(counts: Mapping[str, float]) -> Distribution:
    total = float(sum(counts.values()))
    if total <= 0:
        return {}
    return {k: v / total for k, v in counts.items() if v}


def distance(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Euclidean distance over the union of keys."""
    return math.sqrt(sum((a.get(k, 0.0) - b.get(k, 0.0)) ** 2 for k in set(a) | set(b)))


def load_exemplars(path: str) -> List[Distribution]:
    """Read a JSON list of ``{outcome: count}`` objects."""
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"No exemplars file |{path}|")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Exemplars file {path} is not valid JSON: {e}") from e
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise ConfigurationError(f"Exemplars file {path} must hold a list of objects")
    return [normalize(d) for d in data]


class Scorer(ABC):
    """Assigns scores and marks candidates with special outcomes."""

    def __init__(self, special_codes: Sequence[str] = ()):
        self.special_patterns = [re.compile(code) for code in special_codes]

    @abstractmethod
    def score(self, candidate: Candidate) -> float:
        pass

    def is_special(self, candidate: Candidate) -> bool:
        return any(
            count > 0 and pattern.search(outcome)
            for outcome, count in candidate.results.items()
            for pattern in self.special_patterns
        )

    def score_all(self, candidates: Iterable[Candidate]) -> None:
        for c in candidates:
            c.score = self.score(c)
            c.special = self.is_special(c)
            if c.special:
                logger.info("Candidate %d produced a special outcome: %s",
                            c.id, dict(c.results))


class ExemplarDistanceScorer(Scorer):
    """Score = max distance / distance to the nearest exemplar."""

    # Largest distance between two probability distributions.
    MAX_DISTANCE = math.sqrt(2.0)
    EPSILON = 1e-9

    def __init__(self, exemplars: Sequence[Mapping[str, float]] = (),
                 special_codes: Sequence[str] = ()):
        super().__init__(special_codes)
        self.exemplars = [normalize(e) for e in exemplars] or [{OK: 1.0}]

    def nearest_distance(self, candidate: Candidate) -> float:
        observed = normalize(candidate.results)
        if not observed:
            return self.MAX_DISTANCE
        return min(distance(observed, e) for e in self.exemplars)

    def score(self, candidate: Candidate) -> float:
        return self.MAX_DISTANCE / max(self.nearest_distance(candidate), self.EPSILON)
