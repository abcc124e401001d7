"""
Grammar symbols and the catalog that interns them.

A symbol is only a name. Whether it is a terminal or a nonterminal is decided
by the grammar that uses it (a nonterminal has at least one rule).
"""
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from pyorion.core.errors import ConfigurationError

__all__ = ["GrammarSymbol", "SymbolCatalog"]


@dataclass(frozen=True, order=True)
class GrammarSymbol:
    """Immutable grammar symbol; equality and ordering are by name."""
    name: str

    def __str__(self) -> str:
        return self.name


class SymbolCatalog:
    """Interns symbols so that one name always maps to one object."""

    def __init__(self):
        self._symbols: Dict[str, GrammarSymbol] = {}

    def intern(self, name: str) -> GrammarSymbol:
        """Return the symbol for ``name``, creating it on first use."""
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Invalid symbol name: {name!r}")
        sym = self._symbols.get(name)
        if sym is None:
            sym = GrammarSymbol(name)
            self._symbols[name] = sym
        return sym

    def register(self, name: str) -> GrammarSymbol:
        """Create a new symbol; a second registration of a name is an error."""
        if name in self._symbols:
            raise ConfigurationError(f"Symbol '{name}' registered twice")
        return self.intern(name)

    def get(self, name: str) -> Optional[GrammarSymbol]:
        return self._symbols.get(name)

    def names(self) -> List[str]:
        return list(self._symbols.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._symbols

    def __iter__(self) -> Iterator[GrammarSymbol]:
        return iter(self._symbols.values())

    def __len__(self) -> int:
        return len(self._symbols)
