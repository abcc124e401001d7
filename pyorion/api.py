"""
PyOrion Library API - Simple interface for generation and evolution
"""

import logging
import random
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

from pyorion.config import OrionConfig
from pyorion.core.consistency import ConsistencyAnalyzer, RepairReport
from pyorion.core.derivation import DerivationEngine, GenerationResult
from pyorion.core.errors import ConfigurationError
from pyorion.core.grammar import WeightedGrammar
from pyorion.core.grammar_loader import GrammarLoader
from pyorion.core.introspection import UniverseProvider
from pyorion.core.universe import Universe
from pyorion.core.weights import read_weights
from pyorion.dsl.core import GrammarDefinition
from pyorion.evolution.scoring import ExemplarDistanceScorer, Scorer, load_exemplars
from pyorion.evolution.tournament import Tournament


__all__ = [
    "Orion",
    "create_orion",
]


class Orion:
    """Main PyOrion API.

    - Built-in and plugin grammar definitions
    - Universe from a metadata file, a live database or the demo schema
    - Generation, consistency repair and tournaments with one configuration
    """

    def __init__(self, config: Optional[OrionConfig] = None,
                 universe: Optional[Universe] = None):
        self.config = config or OrionConfig.from_env()
        self._loader = GrammarLoader()
        self._loader.load_builtins()
        self._loader.load_from_env()
        self._universe = universe

    @property
    def definitions(self) -> Dict[str, GrammarDefinition]:
        return self._loader.definitions

    @property
    def universe(self) -> Universe:
        """The object catalog, loaded on first use."""
        if self._universe is None:
            self._universe = self._load_universe()
        return self._universe

    def _load_universe(self) -> Universe:
        if self.config.universe_file:
            return Universe.from_file(self.config.universe_file)
        if self.config.dsn:
            universe = UniverseProvider(self.config.dsn, self.config.schemas).introspect()
            if len(universe):
                return universe
            logger.warning("No objects found at %s; using the demo schema", self.config.dsn)
        return Universe.default()

    def list_grammars(self) -> Dict[str, str]:
        return {name: d.description or 'Custom grammar'
                for name, d in self.definitions.items()}

    def add_grammar(self, name: str, definition: GrammarDefinition) -> None:
        self._loader.definitions[name] = definition

    def load_grammar_file(self, name: str, file_path: str) -> None:
        if not self._loader.load_from_file(name, file_path):
            raise ValueError(f"No grammar 'g' found in {file_path}")

    def grammar(self, name: Optional[str] = None,
                weights_file: Optional[str] = None) -> WeightedGrammar:
        """Build a grammar, applying a weights file if one is configured."""
        grammar = self._loader.build(name or self.config.grammar)
        weights_file = weights_file or self.config.weights_file
        if weights_file:
            grammar.set_weights(read_weights(weights_file, grammar))
        return grammar

    def engine(self, name: Optional[str] = None) -> DerivationEngine:
        return DerivationEngine(self.grammar(name), self.universe)

    def generate_from_grammar(self, grammar_name: Optional[str] = None, count: int = 1,
                              seed: Optional[int] = None, start: Optional[str] = None,
                              count_productions: bool = False) -> Iterator[GenerationResult]:
        seed = seed if seed is not None else self.config.seed
        start = start or self.config.start_symbol
        return self.engine(grammar_name).generate_many(count, start, seed, count_productions)

    def generate(self, grammar: Optional[str] = None, count: int = 1,
                 seed: Optional[int] = None, start: Optional[str] = None) -> List[str]:
        """Convenience wrapper returning statement texts."""
        return [r.text for r in self.generate_from_grammar(grammar, count, seed, start)]

    def analyze(self, grammar: Optional[str] = None, seed: Optional[int] = None,
                start: Optional[str] = None) -> GenerationResult:
        """One statement with its derivation trace and tree."""
        seed = seed if seed is not None else self.config.seed
        return self.engine(grammar).generate(start or self.config.start_symbol, seed,
                                             count_productions=True, trace=True, keep_tree=True)

    def validate(self, grammar: Optional[WeightedGrammar] = None, name: Optional[str] = None,
                 adjust: Optional[bool] = None) -> RepairReport:
        """Normalise a grammar's weights and repair them if inconsistent."""
        grammar = grammar or self.grammar(name)
        adjust = self.config.adjust_consistency if adjust is None else adjust
        return ConsistencyAnalyzer(grammar).validate_and_repair(
            grammar.to_weights(), self.config.top_weight,
            max_radius=self.config.max_radius,
            max_attempts=self.config.max_repair_attempts,
            rng=random.Random(self.config.seed),
            adjust=adjust,
        )

    def scorer(self) -> Scorer:
        exemplars = load_exemplars(self.config.exemplars_file) if self.config.exemplars_file else ()
        return ExemplarDistanceScorer(exemplars, self.config.special_codes)

    def tournament(self, executor=None, scorer: Optional[Scorer] = None,
                   name: Optional[str] = None) -> Tournament:
        grammar = self.grammar(name)
        report = self.validate(grammar)
        if not report.within_bound:
            raise ConfigurationError(
                f"Grammar '{grammar.name}' is inconsistent (radius {report.radius:f}); "
                f"cannot start a tournament")
        return Tournament(grammar, self.config, self.universe, scorer or self.scorer(),
                          executor, initial_weights=report.weights)


def create_orion(**overrides) -> Orion:
    """Create a new Orion instance; keyword arguments override the environment."""
    return Orion(OrionConfig.from_env(**overrides))
