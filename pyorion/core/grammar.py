"""
Weighted (stochastic) context free grammar.

The grammar owns an ordered rule table. Every entry carries a positive integer
weight and, optionally, the identifiers of a generation behaviour and a
representation behaviour (see ``pyorion.core.behaviors``). The position of an
entry in the table is its position in the exported weight vector, so a weight
vector is only meaningful for the grammar instance that produced it.
"""
import logging
import random
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set

from pyorion.core.errors import ConfigurationError
from pyorion.core.rules import ProductionRule, RuleCatalog
from pyorion.core.symbols import GrammarSymbol, SymbolCatalog

logger = logging.getLogger(__name__)

__all__ = [
    "RuleEntry",
    "RuleChoice",
    "NonterminalGene",
    "WeightedGrammar",
]


@dataclass
class RuleEntry:
    """One row of the rule table."""
    rule: ProductionRule
    weight: int
    generator: Optional[str] = None
    representer: Optional[str] = None


@dataclass
class _NonterminalInfo:
    index: int
    total: int = 0
    rules: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class RuleChoice:
    """Result of a weighted random rule selection."""
    rule: ProductionRule
    index: int
    generator: Optional[str]
    representer: Optional[str]

    @property
    def name(self) -> str:
        return f"Rule.{self.rule.lhs.name}.{self.index}"


@dataclass
class NonterminalGene:
    """The weights of all rules sharing one left hand side."""
    nonterminal: GrammarSymbol
    weights: List[int]


class WeightedGrammar:
    """A stochastic context free grammar with integer rule weights."""

    def __init__(self, name: str = "grammar",
                 symbols: Optional[SymbolCatalog] = None,
                 rules: Optional[RuleCatalog] = None,
                 start_symbol: Optional[GrammarSymbol] = None):
        self.name = name
        self.symbols = symbols if symbols is not None else SymbolCatalog()
        self.rules = rules if rules is not None else RuleCatalog()
        self.start_symbol = start_symbol
        self._table: List[RuleEntry] = []
        self._rule_set: Dict[ProductionRule, int] = {}
        self._nt_index: Dict[GrammarSymbol, _NonterminalInfo] = {}
        self._idx_to_sym: List[GrammarSymbol] = []
        self.declared_terminals: Set[GrammarSymbol] = set()
        self.terminal_text: Dict[GrammarSymbol, str] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_rule(self, rule: ProductionRule, weight: int,
                 generator: Optional[str] = None,
                 representer: Optional[str] = None) -> "WeightedGrammar":
        """Append a rule to the table."""
        if rule is None:
            raise ConfigurationError("The input rule is None")
        if weight is None:
            raise ConfigurationError("The input weight is None")
        weight = int(weight)
        if weight < 1:
            raise ConfigurationError(f"Weight {weight} < 1 for rule {rule}")
        if rule in self._rule_set:
            raise ConfigurationError(f"Duplicate rule {rule}")

        info = self._nt_index.get(rule.lhs)
        if info is None:
            info = _NonterminalInfo(index=len(self._idx_to_sym))
            self._nt_index[rule.lhs] = info
            self._idx_to_sym.append(rule.lhs)

        r_index = len(self._table)
        self._rule_set[rule] = r_index
        self._table.append(RuleEntry(rule, weight, generator, representer))
        info.total += weight
        info.rules.append(r_index)
        return self

    def copy(self) -> "WeightedGrammar":
        """Return a grammar sharing rules and symbols but owning its weights."""
        other = WeightedGrammar(self.name, self.symbols, self.rules, self.start_symbol)
        other._table = [replace(e) for e in self._table]
        other._rule_set = dict(self._rule_set)
        other._nt_index = {
            s: _NonterminalInfo(i.index, i.total, list(i.rules))
            for s, i in self._nt_index.items()
        }
        other._idx_to_sym = list(self._idx_to_sym)
        other.declared_terminals = set(self.declared_terminals)
        other.terminal_text = self.terminal_text
        return other

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def is_nonterminal(self, sym: GrammarSymbol) -> bool:
        return sym in self._nt_index

    @property
    def rule_count(self) -> int:
        return len(self._table)

    @property
    def nt_count(self) -> int:
        return len(self._nt_index)

    @property
    def entries(self) -> Sequence[RuleEntry]:
        return tuple(self._table)

    def entry(self, index: int) -> RuleEntry:
        return self._table[index]

    def nonterminals(self) -> List[GrammarSymbol]:
        """Nonterminals in dense index order."""
        return list(self._idx_to_sym)

    def terminals(self) -> List[GrammarSymbol]:
        seen = {}
        for e in self._table:
            for s in e.rule.rhs:
                if s not in self._nt_index:
                    seen[s] = None
        return sorted(seen)

    def declare_terminals(self, symbols: Iterable[GrammarSymbol]) -> None:
        self.declared_terminals.update(symbols)

    def text_of(self, sym: GrammarSymbol) -> str:
        """Display text of a terminal."""
        return self.terminal_text.get(sym, sym.name)

    def undefined_nonterminals(self) -> List[GrammarSymbol]:
        """Right hand side symbols with no rule that were never declared terminal."""
        return [s for s in self.terminals() if s not in self.declared_terminals]

    def nt_index(self, sym: GrammarSymbol) -> int:
        return self._nt_index[sym].index

    def symbol_at(self, index: int) -> GrammarSymbol:
        return self._idx_to_sym[index]

    def rule_indices(self, sym: GrammarSymbol) -> List[int]:
        return list(self._nt_index[sym].rules)

    def total_weight(self, sym: GrammarSymbol) -> int:
        return self._nt_index[sym].total

    def symbol(self, name: str) -> GrammarSymbol:
        sym = self.symbols.get(name)
        if sym is None:
            raise ConfigurationError(f"Unknown symbol '{name}' in grammar '{self.name}'")
        return sym

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def random_rule(self, sym: GrammarSymbol, rng: random.Random) -> RuleChoice:
        """Pick a rule for ``sym`` with probability proportional to its weight.

        The draw is a uniform integer in [1, total]; the first rule whose
        running total reaches the draw wins.
        """
        info = self._nt_index.get(sym)
        if info is None:
            raise ConfigurationError(f"Symbol '{sym.name}' is not a nonterminal")
        choice = rng.randint(1, info.total)
        running = 0
        for i in info.rules:
            running += self._table[i].weight
            if choice <= running:
                e = self._table[i]
                return RuleChoice(e.rule, i, e.generator, e.representer)
        # Unreachable while totals are kept in sync with the table.
        raise ConfigurationError(f"Total weight for '{sym.name}' is out of sync")

    def probabilities(self, sym: GrammarSymbol) -> List[float]:
        info = self._nt_index[sym]
        return [self._table[i].weight / info.total for i in info.rules]

    # ------------------------------------------------------------------
    # Weight vectors
    # ------------------------------------------------------------------

    def to_weights(self) -> List[int]:
        return [e.weight for e in self._table]

    def set_weights(self, weights: Sequence[int], require_positive: bool = True) -> None:
        """Import a full positional weight vector and recompute totals."""
        if len(weights) != len(self._table):
            raise ConfigurationError(
                f"Weights length {len(weights)} != rule table length {len(self._table)}"
            )
        values = []
        for i, w in enumerate(weights):
            w = int(w)
            if require_positive and w < 1:
                raise ConfigurationError(f"Input weight {i} is {w}; weights must be >= 1")
            values.append(w)
        for e, w in zip(self._table, values):
            e.weight = w
        self._recompute_totals()

    def set_rule_weight(self, index: int, weight: int) -> None:
        """Change one weight and refresh only its nonterminal's total."""
        e = self._table[index]
        e.weight = int(weight)
        info = self._nt_index[e.rule.lhs]
        info.total = sum(self._table[i].weight for i in info.rules)

    def _recompute_totals(self) -> None:
        for info in self._nt_index.values():
            info.total = sum(self._table[i].weight for i in info.rules)

    def project_nt(self, nt: GrammarSymbol) -> NonterminalGene:
        info = self._nt_index[nt]
        return NonterminalGene(nt, [self._table[i].weight for i in info.rules])

    def random_nt(self, rng: random.Random) -> NonterminalGene:
        return self.project_nt(rng.choice(self._idx_to_sym))

    def update_nt(self, gene: NonterminalGene) -> None:
        info = self._nt_index[gene.nonterminal]
        if len(gene.weights) != len(info.rules):
            raise ConfigurationError(
                f"Gene for '{gene.nonterminal.name}' has {len(gene.weights)} weights, "
                f"expected {len(info.rules)}"
            )
        for i, w in zip(info.rules, gene.weights):
            self._table[i].weight = int(w)
        info.total = sum(self._table[i].weight for i in info.rules)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def dump(self) -> str:
        """Human readable listing of symbols and weighted rules."""
        lines = [f"Grammar '{self.name}'", "", "Nonterminals:"]
        for i, name in enumerate(sorted(s.name for s in self._idx_to_sym), 1):
            lines.append(f"  {i:4d}. {name}")
        lines.append("")
        lines.append("Terminals:")
        for i, sym in enumerate(self.terminals(), 1):
            lines.append(f"  {i:4d}. {sym.name}")
        lines.append("")
        lines.append("Production rules:")
        width = max((len(str(e.weight)) for e in self._table), default=1)
        for sym in sorted(self._idx_to_sym):
            info = self._nt_index[sym]
            lines.append(f"  Rules starting with {sym.name}; weight = {info.total}")
            for i in info.rules:
                e = self._table[i]
                lines.append(f"    {e.weight:>{width}d}. {e.rule}")
        return "\n".join(lines)

    def to_bnf(self) -> str:
        """BNF style listing suitable for external parser generators."""
        out = []
        for sym in self._idx_to_sym:
            alternatives = []
            for i in self._nt_index[sym].rules:
                rhs = " ".join(s.name for s in self._table[i].rule.rhs)
                alternatives.append(rhs)
            out.append(f"{sym.name} ::= " + "\n    | ".join(alternatives) + " ;")
        return "\n".join(out)

    def __repr__(self) -> str:
        return (f"WeightedGrammar(name={self.name!r}, rules={self.rule_count}, "
                f"nonterminals={self.nt_count})")
