"""
Grammar definition DSL.

Grammar modules describe their symbols and rules with a GrammarDefinition
and expose it as ``g``:

    g = GrammarDefinition("arith")
    g.nonterminals("expr", "term")
    g.terminals("+", "(", ")")
    g.rule("N", "expr", "expr + term", rep="tight_binary")
    g.start("expr")

``build()`` turns the definition into a WeightedGrammar with its own symbol
and rule catalogs. Weight classes name the initial rule weights.
"""
import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pyorion.core.behaviors import get_generator, get_representer
from pyorion.core.errors import ConfigurationError
from pyorion.core.grammar import WeightedGrammar
from pyorion.core.rules import RuleCatalog
from pyorion.core.symbols import SymbolCatalog

logger = logging.getLogger(__name__)

_NORMAL = 1000000
_LOW = int(math.sqrt(_NORMAL) + 1)

WEIGHT_CLASSES: Dict[str, int] = {
    "N": _NORMAL,                                  # normal
    "L": _LOW,                                     # low
    "M": int(_LOW * math.log(_NORMAL) ** 2),       # medium
    "O": 10,                                       # rare
}

Rhs = Union[str, Sequence[str]]


class _RuleSpec:
    __slots__ = ("weight", "lhs", "rhs", "gen", "rep")

    def __init__(self, weight: Union[str, int], lhs: str, rhs: Tuple[str, ...],
                 gen: Optional[str], rep: Optional[str]):
        self.weight = weight
        self.lhs = lhs
        self.rhs = rhs
        self.gen = gen
        self.rep = rep


class GrammarDefinition:
    """Declarative description of a weighted grammar."""

    def __init__(self, name: str = "grammar", description: str = ""):
        self.name = name
        self.description = description
        self._nonterminals: List[str] = []
        self._terminals: Dict[str, str] = {}
        self._rules: List[_RuleSpec] = []
        self._stubs: List[str] = []
        self._start: Optional[str] = None
        self._built: Optional[WeightedGrammar] = None

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def nonterminals(self, *names: str) -> "GrammarDefinition":
        for name in names:
            if name not in self._nonterminals:
                self._nonterminals.append(name)
        return self

    def terminal(self, key: str, text: Optional[str] = None) -> "GrammarDefinition":
        """Declare a terminal rendered as ``text`` (defaults to ``key``)."""
        self._terminals[key] = key if text is None else text
        return self

    def terminals(self, *keys: str) -> "GrammarDefinition":
        for key in keys:
            self.terminal(key)
        return self

    def keywords(self, *words: str) -> "GrammarDefinition":
        """Reserved words; the symbol and its text are the upper case word."""
        for word in words:
            self.terminal(word.upper())
        return self

    def rule(self, weight: Union[str, int], lhs: str, rhs: Rhs = (),
             rep: Optional[str] = None, gen: Optional[str] = None) -> "GrammarDefinition":
        """Add ``lhs -> rhs``. ``rhs`` is a sequence or a space separated string."""
        if isinstance(rhs, str):
            rhs = rhs.split()
        self._rules.append(_RuleSpec(weight, lhs, tuple(rhs), gen, rep))
        return self

    def rules(self, specs: Iterable[tuple]) -> "GrammarDefinition":
        """Add ``(lhs, rhs, weight[, gen[, rep]])`` tuples."""
        for spec in specs:
            lhs, rhs, weight, *rest = spec
            gen = rest[0] if len(rest) > 0 else None
            rep = rest[1] if len(rest) > 1 else None
            self.rule(weight, lhs, rhs, rep=rep, gen=gen)
        return self

    def stub(self, *names: str) -> "GrammarDefinition":
        """Nonterminals that exist but fail the statement when reached."""
        for name in names:
            self.nonterminals(name)
            self._stubs.append(name)
        return self

    def start(self, name: str) -> "GrammarDefinition":
        self._start = name
        return self

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    @staticmethod
    def weight_of(weight: Union[str, int]) -> int:
        if isinstance(weight, int):
            return weight
        try:
            return WEIGHT_CLASSES[weight]
        except KeyError:
            raise ConfigurationError(f"Unknown weight class {weight!r}") from None

    def build(self) -> WeightedGrammar:
        """Validate the definition and return a fresh WeightedGrammar."""
        clash = set(self._nonterminals) & set(self._terminals)
        if clash:
            raise ConfigurationError(
                f"Grammar '{self.name}': names used as terminal and nonterminal: {sorted(clash)}")

        symbols = SymbolCatalog()
        rules = RuleCatalog()
        for name in self._nonterminals:
            symbols.register(name)
        for key in self._terminals:
            symbols.register(key)

        grammar = WeightedGrammar(self.name, symbols, rules)
        grammar.declare_terminals(symbols.get(k) for k in self._terminals)
        grammar.terminal_text.update({symbols.get(k): t for k, t in self._terminals.items()})

        for spec in self._rules:
            self._add(grammar, spec)
        for name in self._stubs:
            placeholder = f"<{name}>"
            if placeholder not in symbols:
                symbols.register(placeholder)
            grammar.declare_terminals([symbols.get(placeholder)])
            self._add(grammar, _RuleSpec("N", name, (placeholder,), None, "unimplemented"))

        missing = [n for n in self._nonterminals if not grammar.is_nonterminal(symbols.get(n))]
        if missing:
            raise ConfigurationError(f"Grammar '{self.name}': nonterminals without rules: {missing}")

        if self._start is not None:
            start = symbols.get(self._start)
            if start is None or not grammar.is_nonterminal(start):
                raise ConfigurationError(
                    f"Grammar '{self.name}': start symbol '{self._start}' is not a nonterminal")
            grammar.start_symbol = start

        logger.debug("Built grammar '%s': %d rules, %d nonterminals",
                     self.name, grammar.rule_count, grammar.nt_count)
        return grammar

    def _add(self, grammar: WeightedGrammar, spec: _RuleSpec) -> None:
        symbols = grammar.symbols
        lhs = symbols.get(spec.lhs)
        if lhs is None or spec.lhs in self._terminals:
            raise ConfigurationError(
                f"Grammar '{self.name}': '{spec.lhs}' is not a declared nonterminal")
        rhs = []
        for name in spec.rhs:
            sym = symbols.get(name)
            if sym is None:
                raise ConfigurationError(
                    f"Grammar '{self.name}': undeclared symbol '{name}' in rule for '{spec.lhs}'")
            rhs.append(sym)
        # Fail on unknown behaviour ids now rather than mid-generation.
        get_generator(spec.gen)
        get_representer(spec.rep)
        rule = grammar.rules.register(lhs, rhs)
        grammar.add_rule(rule, self.weight_of(spec.weight), spec.gen, spec.rep)

    @property
    def grammar(self) -> WeightedGrammar:
        """The grammar built from this definition, built on first use."""
        if self._built is None:
            self._built = self.build()
        return self._built

    def generate(self, start: Optional[str] = None, seed: Optional[int] = None,
                 universe=None) -> str:
        """Generate one statement with this definition's default weights."""
        from pyorion.core.derivation import DerivationEngine
        return DerivationEngine(self.grammar, universe).generate(start, seed).text

    def __repr__(self) -> str:
        return (f"GrammarDefinition(name={self.name!r}, rules={len(self._rules)}, "
                f"nonterminals={len(self._nonterminals)})")
