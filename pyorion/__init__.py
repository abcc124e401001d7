"""
PyOrion - stochastic SQL grammar engine with evolved weights

Generates referentially consistent SQL from a weighted grammar and evolves
the grammar's weights with a genetic algorithm.
"""

__version__ = "1.0.0"

from .dsl.core import GrammarDefinition
from .config import OrionConfig
from .api import Orion, create_orion

__all__ = [
    'GrammarDefinition', 'OrionConfig',
    'Orion', 'create_orion'
]
