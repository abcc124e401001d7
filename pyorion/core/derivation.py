"""
Derivation engine.

Expands a start symbol into a derivation tree by repeated weighted rule
selection, then renders the tree to text. Every call owns a private random
stream and a fresh scope catalog, so a (grammar weights, seed) pair always
reproduces the same statement.
"""
import logging
import random
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional

from pyorion.core.behaviors import get_generator, get_representer
from pyorion.core.errors import RenderError
from pyorion.core.grammar import WeightedGrammar
from pyorion.core.scope import ScopeCatalog, ScopeSegment
from pyorion.core.symbols import GrammarSymbol
from pyorion.core.universe import Universe

logger = logging.getLogger(__name__)

__all__ = [
    "DerivationNode",
    "DerivationTree",
    "TraceStep",
    "GenerationResult",
    "DerivationEngine",
    "FALLBACK_STATEMENT",
]

FALLBACK_STATEMENT = "select null where 1 = 0"


@dataclass
class DerivationNode:
    index: int
    symbol: GrammarSymbol
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    payload: Any = None
    scope: Optional[ScopeSegment] = None
    generator: Optional[str] = None
    representer: Optional[str] = None
    rule_name: Optional[str] = None

    @property
    def expanded(self) -> bool:
        return self.rule_name is not None


class DerivationTree:
    """Arena of nodes addressed by index; node 0 is the root."""

    def __init__(self):
        self.nodes: List[DerivationNode] = []

    def add(self, symbol: GrammarSymbol, parent: Optional[int] = None) -> DerivationNode:
        node = DerivationNode(index=len(self.nodes), symbol=symbol, parent=parent)
        self.nodes.append(node)
        if parent is not None:
            self.nodes[parent].children.append(node.index)
        return node

    @property
    def root(self) -> DerivationNode:
        return self.nodes[0]

    def __getitem__(self, index: int) -> DerivationNode:
        return self.nodes[index]

    def __len__(self) -> int:
        return len(self.nodes)

    def walk(self, index: int = 0, depth: int = 0) -> Iterator[tuple]:
        """Pre-order (depth, node) pairs."""
        stack = [(index, depth)]
        while stack:
            i, d = stack.pop()
            node = self.nodes[i]
            yield d, node
            stack.extend((c, d + 1) for c in reversed(node.children))

    def format(self) -> str:
        lines = []
        for depth, node in self.walk():
            label = node.symbol.name
            if node.rule_name:
                label += f"  [{node.rule_name}]"
            if node.payload is not None and not isinstance(node.payload, ScopeSegment):
                label += f"  = {node.payload}"
            lines.append("  " * depth + label)
        return "\n".join(lines)


@dataclass
class TraceStep:
    """One rule application and the frontier left after it."""
    rule_name: str
    rule: str
    frontier: List[str]


@dataclass
class GenerationResult:
    start: str
    seed: int
    text: str
    success: bool = True
    reason: Optional[str] = None
    production_counts: Counter = field(default_factory=Counter)
    trace: List[TraceStep] = field(default_factory=list)
    error: Optional[RenderError] = None
    tree: Optional[DerivationTree] = None

    @property
    def probe_text(self) -> str:
        """Text tagged with its seed so an executed probe can be traced back."""
        return f"/*{self.seed}*/ {self.text}"


class _RenderAbort(Exception):
    def __init__(self, error: RenderError):
        super().__init__(error.reason)
        self.error = error


@dataclass
class GenerationContext:
    catalog: ScopeCatalog
    rng: random.Random


class RenderContext:
    """What representation behaviours see while a tree is rendered."""

    def __init__(self, grammar: WeightedGrammar, tree: DerivationTree,
                 catalog: ScopeCatalog, rng: random.Random):
        self.grammar = grammar
        self.tree = tree
        self.catalog = catalog
        self.rng = rng

    def render(self, node: DerivationNode) -> str:
        if not node.expanded:
            return self.grammar.text_of(node.symbol)
        return get_representer(node.representer).represent(node, self)

    def child_texts(self, node: DerivationNode) -> List[str]:
        return [self.render(self.tree[i]) for i in node.children]

    def abort(self, reason: str, symbol: Optional[str] = None) -> str:
        raise _RenderAbort(RenderError(reason, symbol))


class DerivationEngine:
    """Generates statements from a weighted grammar."""

    def __init__(self, grammar: WeightedGrammar, universe: Optional[Universe] = None,
                 max_nodes: int = 200000):
        self.grammar = grammar
        self.universe = universe if universe is not None else Universe.default()
        self.max_nodes = max_nodes

    def build_tree(self, start: GrammarSymbol, rng: random.Random, catalog: ScopeCatalog,
                   counts: Optional[Counter] = None,
                   trace: Optional[List[TraceStep]] = None) -> DerivationTree:
        """Expand ``start`` top-down until only terminals remain."""
        g = self.grammar
        ctx = GenerationContext(catalog, rng)
        tree = DerivationTree()
        pending: Deque[int] = deque([tree.add(start).index])

        while pending:
            node = tree[pending.popleft()]
            if not g.is_nonterminal(node.symbol):
                continue
            if len(tree) > self.max_nodes:
                raise _RenderAbort(RenderError(
                    f"derivation exceeded {self.max_nodes} nodes", node.symbol.name))

            choice = g.random_rule(node.symbol, rng)
            node.rule_name = choice.name
            node.generator = choice.generator
            node.representer = choice.representer

            generator = get_generator(choice.generator)
            if generator is not None:
                node.payload = generator.generate(node, ctx)
                if generator.stores_scope:
                    node.scope = node.payload

            children = [tree.add(sym, node.index).index for sym in choice.rule.rhs]
            pending.extendleft(reversed(children))

            if counts is not None:
                counts[choice.name] += 1
            if trace is not None:
                trace.append(TraceStep(
                    choice.name, str(choice.rule),
                    [tree[i].symbol.name for i in pending],
                ))
        return tree

    def render_tree(self, tree: DerivationTree, catalog: ScopeCatalog,
                    rng: random.Random) -> str:
        return RenderContext(self.grammar, tree, catalog, rng).render(tree.root)

    def generate(self, start: Optional[str] = None, seed: Optional[int] = None,
                 count_productions: bool = False, trace: bool = False,
                 keep_tree: bool = False) -> GenerationResult:
        """Generate one statement.

        Recoverable rendering problems produce a safe fallback statement with
        ``success=False``; scope sequencing errors propagate.
        """
        if start is None:
            if self.grammar.start_symbol is None:
                raise ValueError(f"Grammar '{self.grammar.name}' has no start symbol")
            start_sym = self.grammar.start_symbol
        else:
            start_sym = self.grammar.symbol(start)
        if seed is None:
            seed = random.randrange(2 ** 31)

        rng = random.Random(seed)
        catalog = ScopeCatalog(self.universe, rng)
        result = GenerationResult(start=start_sym.name, seed=seed, text=FALLBACK_STATEMENT)
        counts = result.production_counts if count_productions else None
        steps = result.trace if trace else None

        try:
            tree = self.build_tree(start_sym, rng, catalog, counts, steps)
            if keep_tree:
                result.tree = tree
            result.text = self.render_tree(tree, catalog, rng)
        except _RenderAbort as e:
            self._fail(result, e.error)
        except RecursionError:
            self._fail(result, RenderError("derivation tree too deep to render", start_sym.name))
        return result

    def generate_many(self, count: int, start: Optional[str] = None,
                      seed: Optional[int] = None,
                      count_productions: bool = False) -> Iterator[GenerationResult]:
        """Yield ``count`` statements with consecutive seeds."""
        if seed is None:
            seed = random.randrange(2 ** 31)
        for i in range(count):
            yield self.generate(start, seed + i, count_productions=count_productions)

    @staticmethod
    def _fail(result: GenerationResult, error: RenderError) -> None:
        logger.warning("Seed %d: %s; using fallback statement", result.seed, error.reason)
        result.text = FALLBACK_STATEMENT
        result.success = False
        result.reason = error.reason
        result.error = error
