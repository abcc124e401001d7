"""
Generation and representation behaviours.

A grammar rule may name one generation behaviour and one representation
behaviour by a stable string identifier. Generation behaviours run when a
node is expanded and return a value the engine stores in the node's payload
slot; they are the only place where the scope stack is pushed, popped or
populated. Representation behaviours turn an expanded node into text.

Both sets are closed registries populated at import time:

    @register_representer("tight")
    class Tight(Representer):
        ...
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type

from pyorion.core.errors import ConfigurationError
from pyorion.core.scope import UNKNOWN_SCHEMA, SourceDescriptor
from pyorion.core.universe import SourceKind

logger = logging.getLogger(__name__)

__all__ = [
    "Generator",
    "Representer",
    "GENERATORS",
    "REPRESENTERS",
    "DEFAULT_REPRESENTER",
    "register_generator",
    "register_representer",
    "get_generator",
    "get_representer",
]

DEFAULT_REPRESENTER = "default"


class Generator(ABC):
    """Side effect run when a node is expanded."""
    id = ""
    # When True the engine also records the returned value as the node's scope.
    stores_scope = False

    @abstractmethod
    def generate(self, node, ctx) -> Any:
        """Return the payload for ``node``."""


class Representer(ABC):
    """Turns an expanded node into text."""
    id = ""

    @abstractmethod
    def represent(self, node, ctx) -> str:
        pass


GENERATORS: Dict[str, Generator] = {}
REPRESENTERS: Dict[str, Representer] = {}


def _registrar(registry: Dict[str, Any], kind: str) -> Callable[[str], Callable[[Type], Type]]:
    def register(behaviour_id: str):
        def decorator(cls: Type) -> Type:
            if behaviour_id in registry:
                raise ConfigurationError(f"Duplicate {kind} behaviour '{behaviour_id}'")
            instance = cls()
            instance.id = behaviour_id
            registry[behaviour_id] = instance
            return cls
        return decorator
    return register


register_generator = _registrar(GENERATORS, "generation")
register_representer = _registrar(REPRESENTERS, "representation")


def get_generator(behaviour_id: Optional[str]) -> Optional[Generator]:
    if behaviour_id is None:
        return None
    try:
        return GENERATORS[behaviour_id]
    except KeyError:
        available = ", ".join(sorted(GENERATORS))
        raise ConfigurationError(
            f"Generation behaviour '{behaviour_id}' not found. Available: {available}"
        ) from None


def get_representer(behaviour_id: Optional[str]) -> Representer:
    try:
        return REPRESENTERS[behaviour_id or DEFAULT_REPRESENTER]
    except KeyError:
        available = ", ".join(sorted(REPRESENTERS))
        raise ConfigurationError(
            f"Representation behaviour '{behaviour_id}' not found. Available: {available}"
        ) from None


def _join(parts: List[str], sep: str = " ") -> str:
    return sep.join(p for p in parts if p).strip()


# ============================================================================
# Structural representations
# ============================================================================

@register_representer("default")
class Default(Representer):
    """Children separated by single spaces."""
    def represent(self, node, ctx) -> str:
        return _join(ctx.child_texts(node))


@register_representer("tight")
class Tight(Representer):
    def represent(self, node, ctx) -> str:
        return _join(ctx.child_texts(node), "")


@register_representer("tight_unary")
@register_representer("tight_binary")
class TightOperator(Representer):
    """Operator and operands with all surrounding space removed."""
    def represent(self, node, ctx) -> str:
        return "".join(p.strip() for p in ctx.child_texts(node))


@register_representer("tight_paren")
class TightParen(Representer):
    """``( inner )`` rendered as ``(inner)``."""
    def represent(self, node, ctx) -> str:
        parts = ctx.child_texts(node)
        inner = parts[1] if len(parts) >= 3 else _join(parts)
        return f"({inner.strip()})"


@register_representer("comma_list")
class CommaList(Representer):
    def represent(self, node, ctx) -> str:
        return _join(ctx.child_texts(node)).replace(" ,", ",")


@register_representer("unimplemented")
class Unimplemented(Representer):
    """Stub for a construct the grammar does not support yet."""
    def represent(self, node, ctx) -> str:
        return ctx.abort(f"unimplemented construct <{node.symbol.name}>", node.symbol.name)


# ============================================================================
# Payload representations
# ============================================================================

@register_representer("payload_text")
class PayloadText(Representer):
    def represent(self, node, ctx) -> str:
        if node.payload is None:
            return _join(ctx.child_texts(node))
        return str(node.payload)


@register_representer("payload_name")
class PayloadName(Representer):
    def represent(self, node, ctx) -> str:
        if not isinstance(node.payload, SourceDescriptor) or node.payload.name is None:
            return ctx.abort(f"no source registered for <{node.symbol.name}>", node.symbol.name)
        return node.payload.name


@register_representer("payload_schema")
class PayloadSchema(Representer):
    def represent(self, node, ctx) -> str:
        if not isinstance(node.payload, SourceDescriptor):
            return ctx.abort(f"no schema registered for <{node.symbol.name}>", node.symbol.name)
        return node.payload.schema or UNKNOWN_SCHEMA


@register_representer("sequence_literal")
class SequenceLiteral(Representer):
    """Registered sequence as a quoted regclass literal."""
    def represent(self, node, ctx) -> str:
        desc = node.payload
        if not isinstance(desc, SourceDescriptor) or desc.name is None:
            return ctx.abort(f"no sequence registered for <{node.symbol.name}>", node.symbol.name)
        return f"'{desc.name}'"


# ============================================================================
# Scope lookups
# ============================================================================

@register_representer("sources_first")
class SourcesFirst(Representer):
    """Children separated by spaces, nested query blocks rendered first.

    An inline view's output columns are only known once it is rendered,
    so parts of a block that open a nested block go before their siblings.
    """
    def represent(self, node, ctx) -> str:
        children = [ctx.tree[i] for i in node.children]
        nested = [any(n.scope is not None for _, n in ctx.tree.walk(c.index))
                  for c in children]
        texts = [""] * len(children)
        for k in sorted(range(len(children)), key=lambda k: not nested[k]):
            texts[k] = ctx.render(children[k])
        return _join(texts)


@register_representer("output_column")
class OutputColumn(Representer):
    """A select item written as a bare column reference."""
    def represent(self, node, ctx) -> str:
        text = _join(ctx.child_texts(node))
        ctx.catalog.export_column()
        return text


@register_representer("table_name")
class TableName(Representer):
    def represent(self, node, ctx) -> str:
        return ctx.catalog.choose_table()


@register_representer("table_alias")
class TableAlias(Representer):
    def represent(self, node, ctx) -> str:
        return ctx.catalog.choose_alias()


@register_representer("column_name")
class ColumnName(Representer):
    def represent(self, node, ctx) -> str:
        return ctx.catalog.choose_column()


@register_representer("column_ref")
class ColumnRef(Representer):
    """``alias.column`` where both parts name the same registered source."""
    def represent(self, node, ctx) -> str:
        source_alias = ctx.catalog.choose_alias()
        column = ctx.catalog.choose_column()
        return f"{source_alias}.{column}"


@register_representer("column_alias")
class ColumnAlias(Representer):
    def represent(self, node, ctx) -> str:
        return ctx.catalog.choose_column_alias()


@register_representer("schema_name")
class SchemaName(Representer):
    def represent(self, node, ctx) -> str:
        return ctx.catalog.choose_schema()


@register_representer("subquery")
class Subquery(Representer):
    """Render a query block inside the scope segment it was generated in."""
    def represent(self, node, ctx) -> str:
        if node.scope is None:
            return ctx.abort(f"<{node.symbol.name}> has no scope segment", node.symbol.name)
        ctx.catalog.enter(node.scope)
        try:
            return _join(ctx.child_texts(node))
        finally:
            ctx.catalog.pop()


@register_representer("end_of_subquery")
class EndOfSubquery(Representer):
    def represent(self, node, ctx) -> str:
        return ""


# ============================================================================
# Generation behaviours
# ============================================================================

@register_generator("subquery")
class OpenSubquery(Generator):
    stores_scope = True

    def generate(self, node, ctx) -> Any:
        segment = ctx.catalog.push()
        logger.debug("Opened scope %s at depth %d", segment.name, ctx.catalog.depth)
        return segment


@register_generator("end_of_subquery")
class CloseSubquery(Generator):
    def generate(self, node, ctx) -> Any:
        segment = ctx.catalog.pop()
        return segment.name


@register_generator("register_table")
class RegisterTable(Generator):
    def generate(self, node, ctx) -> Any:
        return ctx.catalog.add_table()


@register_generator("register_schema")
class RegisterSchema(Generator):
    def generate(self, node, ctx) -> Any:
        return ctx.catalog.add_schema()


@register_generator("register_view")
class RegisterView(Generator):
    def generate(self, node, ctx) -> Any:
        return ctx.catalog.add_source(SourceKind.VIEW)


@register_generator("register_mview")
class RegisterMaterializedView(Generator):
    def generate(self, node, ctx) -> Any:
        return ctx.catalog.add_source(SourceKind.MVIEW)


@register_generator("register_sequence")
class RegisterSequence(Generator):
    def generate(self, node, ctx) -> Any:
        return ctx.catalog.add_source(SourceKind.SEQUENCE)


@register_generator("define_alias")
class DefineAlias(Generator):
    def generate(self, node, ctx) -> Any:
        return ctx.catalog.define_alias()


@register_generator("integer")
class IntegerLiteral(Generator):
    def generate(self, node, ctx) -> Any:
        return str(ctx.rng.randint(0, 1000))


@register_generator("number")
class NumberLiteral(Generator):
    def generate(self, node, ctx) -> Any:
        return f"{ctx.rng.uniform(-1000.0, 1000.0):.2f}"


@register_generator("string")
class StringLiteral(Generator):
    ALPHABET = "abcdefghijklmnopqrstuvwxyz"

    def generate(self, node, ctx) -> Any:
        length = ctx.rng.randint(0, 8)
        return "'" + "".join(ctx.rng.choice(self.ALPHABET) for _ in range(length)) + "'"
