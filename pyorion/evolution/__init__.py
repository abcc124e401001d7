"""Genetic evolution of grammar weights"""

from .candidate import Candidate
from .breeder import Breeder, MutationOutcome
from .scoring import Scorer, ExemplarDistanceScorer
from .tournament import Tournament

__all__ = ['Candidate', 'Breeder', 'MutationOutcome', 'Scorer',
           'ExemplarDistanceScorer', 'Tournament']
