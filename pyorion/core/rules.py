"""
Production rules and the catalog that interns them.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Tuple

from pyorion.core.errors import ConfigurationError
from pyorion.core.symbols import GrammarSymbol

__all__ = ["ProductionRule", "RuleCatalog"]


@dataclass(frozen=True)
class ProductionRule:
    """A left hand nonterminal and its (possibly empty) right hand side."""
    lhs: GrammarSymbol
    rhs: Tuple[GrammarSymbol, ...] = ()

    def __str__(self) -> str:
        parts = [self.lhs.name, "==>"]
        parts.extend(s.name for s in self.rhs)
        return " ".join(parts)


class RuleCatalog:
    """Keeps exactly one ProductionRule per distinct (lhs, rhs) pair."""

    def __init__(self):
        self._rules: Dict[GrammarSymbol, List[ProductionRule]] = {}

    def _find(self, lhs: GrammarSymbol, rhs: Tuple[GrammarSymbol, ...]):
        for rule in self._rules.get(lhs, []):
            if rule.rhs == rhs:
                return rule
        return None

    @staticmethod
    def _check(lhs, rhs) -> Tuple[GrammarSymbol, ...]:
        if not isinstance(lhs, GrammarSymbol):
            raise ConfigurationError(f"Rule lhs must be a GrammarSymbol, got {lhs!r}")
        rhs = tuple(rhs)
        for s in rhs:
            if not isinstance(s, GrammarSymbol):
                raise ConfigurationError(
                    f"Rule rhs for '{lhs.name}' contains a non-symbol: {s!r}"
                )
        return rhs

    def intern(self, lhs: GrammarSymbol, rhs: Iterable[GrammarSymbol]) -> ProductionRule:
        """Return the rule for (lhs, rhs), creating it on first use."""
        rhs = self._check(lhs, rhs)
        rule = self._find(lhs, rhs)
        if rule is None:
            rule = ProductionRule(lhs, rhs)
            self._rules.setdefault(lhs, []).append(rule)
        return rule

    def register(self, lhs: GrammarSymbol, rhs: Iterable[GrammarSymbol]) -> ProductionRule:
        """Create a new rule; registering the same production twice is an error."""
        rhs = self._check(lhs, rhs)
        if self._find(lhs, rhs) is not None:
            raise ConfigurationError(
                f"Duplicate rule {ProductionRule(lhs, rhs)}"
            )
        return self.intern(lhs, rhs)

    def rules_for(self, lhs: GrammarSymbol) -> List[ProductionRule]:
        return list(self._rules.get(lhs, []))

    def __iter__(self) -> Iterator[ProductionRule]:
        for rules in self._rules.values():
            yield from rules

    def __len__(self) -> int:
        return sum(len(r) for r in self._rules.values())
