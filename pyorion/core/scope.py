"""
Semantic scoping for generated statements.

Each query block being generated gets a ScopeSegment that records the row
sources (tables, views, inline sub-queries) and columns introduced so far.
Later references in the same block resolve against those earlier choices so
that an alias, a column and its qualifier all name the same object.

Sibling grammar nodes never talk to each other directly. They cooperate
through a small per-segment cursor state machine::

    NONE -> ALIAS_CHOSEN -> NAME_RESOLVED -> COLUMN_CHOSEN

which a column alias choice (or a schema choice) resets to NONE.
"""
import itertools
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from pyorion.core.errors import ScopeSequenceError
from pyorion.core.universe import PHYSICAL_KINDS, SourceKind, Universe

logger = logging.getLogger(__name__)

__all__ = [
    "ScopeState",
    "SCHEMA_FLAG",
    "SourceDescriptor",
    "ColumnDescriptor",
    "ScopeSegment",
    "ScopeCatalog",
]

SCHEMA_FLAG = "SCHEMA"
UNKNOWN_SCHEMA = "UNKNOWN_SCHEMA"


class ScopeState(Enum):
    NONE = 0
    ALIAS_CHOSEN = 1
    NAME_RESOLVED = 2
    COLUMN_CHOSEN = 3


class PlaceholderNames:
    """Mints names that are unique within one generation."""

    def __init__(self):
        self._counter = itertools.count(1)

    def make(self, prefix: str) -> str:
        return f"{prefix}_{next(self._counter)}"


ColumnSource = Union[Tuple[str, ...], Callable[[], List[str]]]


@dataclass
class SourceEntry:
    """A row source registered in a segment; keyed by its alias."""
    name: str
    alias: str
    kind: SourceKind
    schema: Optional[str] = None
    columns: ColumnSource = ()

    def column_list(self) -> List[str]:
        # Inline sources hold a callable so they see the other block's
        # columns as they are at lookup time.
        if callable(self.columns):
            return list(self.columns())
        return list(self.columns)


@dataclass(frozen=True)
class SourceDescriptor:
    schema: Optional[str] = None
    name: Optional[str] = None
    alias: Optional[str] = None
    kind: Optional[SourceKind] = None


@dataclass(frozen=True)
class ColumnDescriptor:
    schema: Optional[str] = None
    name: Optional[str] = None
    alias: Optional[str] = None
    column: Optional[str] = None
    column_alias: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return (self.schema is None and self.name is None and self.alias is None
                and self.column is None and self.column_alias is None)


@dataclass
class _Cursor:
    state: ScopeState = ScopeState.NONE
    alias: Optional[str] = None
    name: Optional[str] = None
    column: Optional[str] = None

    def reset(self) -> None:
        self.state = ScopeState.NONE
        self.alias = self.name = self.column = None


class ScopeSegment:
    """Symbol and column tables for one query block."""

    def __init__(self, universe: Universe, rng: random.Random, name: str,
                 parent: Optional["ScopeSegment"] = None,
                 names: Optional[PlaceholderNames] = None):
        self.universe = universe
        self.rng = rng
        self.name = name
        self.parent = parent
        self.children: List["ScopeSegment"] = []
        self.symtab: Dict[str, SourceEntry] = {}
        # column name -> {column alias -> source alias}
        self.coltab: Dict[str, Dict[str, str]] = {}
        # output names of the select list, in the order they were written
        self.exports: List[str] = []
        self.flags: Set[str] = set()
        self.last_source: Optional[str] = None
        self.pending_source: Optional[SourceDescriptor] = None
        self.cursor = _Cursor()
        self._names = names or PlaceholderNames()
        if parent is not None:
            self.add_inline_source(parent, SourceKind.PARENT)

    def fake_name(self, prefix: str) -> str:
        return self._names.make(prefix)

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def set_flag(self, flag: str) -> None:
        self.flags.add(flag)

    def clear_flag(self, flag: str) -> None:
        self.flags.discard(flag)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    # ------------------------------------------------------------------
    # Row sources
    # ------------------------------------------------------------------

    def export_column(self, name: str) -> None:
        """Record an output name written out in this block's select list."""
        self.exports.append(name)

    def exported_columns(self) -> List[str]:
        """Names this block exposes to its neighbours.

        Only select-list output names count. A name written out twice is
        ambiguous to a reader of the block, so it is not exposed.
        """
        counts: Dict[str, int] = {}
        for name in self.exports:
            counts[name] = counts.get(name, 0) + 1
        return [name for name, n in counts.items() if n == 1]

    def add_inline_source(self, other: "ScopeSegment",
                          kind: SourceKind = SourceKind.CHILD) -> SourceDescriptor:
        """Register another query block as a row source named after it."""
        self.symtab[other.name] = SourceEntry(
            name=other.name, alias=other.name, kind=kind,
            columns=other.exported_columns,
        )
        self.last_source = other.name
        return SourceDescriptor(None, other.name, other.name, kind)

    def add_physical_source(self, kind: SourceKind = SourceKind.TABLE) -> SourceDescriptor:
        """Register a random object of ``kind`` from the universe."""
        keys = self.universe.keys_of(kind)
        if not keys:
            name = self.fake_name(f"UNKNOWN_{kind.value}")
            logger.debug("No %s in universe; using placeholder %s", kind.value, name)
            self.symtab[name] = SourceEntry(name=name, alias=name, kind=kind)
            self.last_source = name
            return SourceDescriptor(None, name, name, kind)

        used = {(e.schema, e.name) for e in self.symtab.values() if e.kind == kind}
        unused = [k for k in keys
                  if (self.universe.get(k).schema, self.universe.get(k).name) not in used]
        obj = self.universe.get(self.rng.choice(unused or keys))

        source_alias = obj.name
        if source_alias in self.symtab:
            source_alias = self.fake_name(source_alias)
        self.symtab[source_alias] = SourceEntry(
            name=obj.name, alias=source_alias, kind=kind,
            schema=obj.schema, columns=obj.columns,
        )
        self.last_source = source_alias
        schema = obj.schema if self.has_flag(SCHEMA_FLAG) else None
        return SourceDescriptor(schema, obj.name, source_alias, kind)

    def add_source_alias(self, alias_or_name: str) -> SourceDescriptor:
        """Give a registered source a real alias, or return the one it has."""
        entry = self.symtab.get(alias_or_name)
        if entry is None:
            return SourceDescriptor(alias=self.fake_name("UNKNOWN_ALIAS"))
        if entry.alias == entry.name:
            new_alias = self.fake_name(alias_or_name)
            del self.symtab[alias_or_name]
            entry.alias = new_alias
            self.symtab[new_alias] = entry
            self._sync_coltab(alias_or_name, new_alias)
            if self.last_source == alias_or_name:
                self.last_source = new_alias
        return SourceDescriptor(entry.schema, entry.name, entry.alias, entry.kind)

    def get_source(self, source_alias: Optional[str] = None) -> SourceDescriptor:
        """Look up a source by alias, or pick a random referenceable one."""
        if source_alias is not None:
            entry = self.symtab.get(source_alias)
            if entry is not None:
                return SourceDescriptor(entry.schema, entry.name, entry.alias, entry.kind)
            name = self.fake_name("UNKNOWN_TABLE")
            return SourceDescriptor(None, name, name, SourceKind.TABLE)

        candidates = [k for k, e in self.symtab.items() if self._referenceable(e)]
        if not candidates:
            name = self.fake_name("UNKNOWN_TABLE")
            return SourceDescriptor(None, name, name, SourceKind.TABLE)
        # Sources whose columns are not known yet (an inline view not
        # rendered so far) are only used when nothing else is left.
        with_columns = [k for k in candidates if self.symtab[k].column_list()]
        return self.get_source(self.rng.choice(with_columns or candidates))

    @staticmethod
    def _referenceable(entry: SourceEntry) -> bool:
        if entry.kind in (SourceKind.TABLE, SourceKind.VIEW, SourceKind.MVIEW):
            return True
        # An aliased child block is an inline view in the FROM list.
        return entry.kind == SourceKind.CHILD and entry.alias != entry.name

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def add_source_column(self, source_alias: Optional[str] = None) -> ColumnDescriptor:
        """Pick a column of a source and register it in the column table."""
        if source_alias is None and self.symtab:
            source_alias = self.rng.choice(list(self.symtab))
        entry = self.symtab.get(source_alias) if source_alias is not None else None
        columns = entry.column_list() if entry is not None else []
        if entry is None or not columns:
            placeholder = self.fake_name("UNKNOWN_COLUMN")
            if entry is None:
                name = self.fake_name("UNKNOWN")
                return ColumnDescriptor(None, name, self.fake_name(name), placeholder, placeholder)
            return ColumnDescriptor(None, entry.name, entry.alias, placeholder, placeholder)

        column = self.rng.choice(columns)
        col_alias = self._add_col_to_coltab(column, entry.alias)
        schema = entry.schema if entry.kind in PHYSICAL_KINDS else None
        return ColumnDescriptor(schema, entry.name, entry.alias, column, col_alias)

    def get_source_column(self, source_alias: Optional[str] = None) -> ColumnDescriptor:
        """Pick an already registered column, optionally of one source."""
        candidates = [
            (column, col_alias, src)
            for column, entry in self.coltab.items()
            for col_alias, src in entry.items()
            if source_alias is None or src == source_alias
        ]
        if not candidates:
            return ColumnDescriptor()
        column, col_alias, src = self.rng.choice(candidates)
        return self._column_descriptor(src, column, col_alias)

    def get_source_column_alias(self, column: str, source_alias: str) -> ColumnDescriptor:
        """Pick one of the existing aliases of ``column`` from ``source_alias``."""
        candidates = [(k, v) for k, v in self.coltab.get(column, {}).items() if v == source_alias]
        if not candidates:
            return ColumnDescriptor()
        col_alias, src = self.rng.choice(candidates)
        return self._column_descriptor(src, column, col_alias)

    def add_column_alias(self, column: str, source_alias: str) -> ColumnDescriptor:
        """Return an alias of a registered column, minting one if it has none.

        Aliases already written out in the select list are not handed out
        again; a fresh one is minted instead.
        """
        entry = self.coltab.get(column)
        if entry is None or source_alias not in entry.values():
            return ColumnDescriptor()
        for key, src in list(entry.items()):
            if src != source_alias:
                continue
            if key == column:
                col_alias = self.fake_name(column)
                del entry[key]
                entry[col_alias] = src
                return self._column_descriptor(src, column, col_alias)
            if key not in self.exports:
                return self._column_descriptor(src, column, key)
        col_alias = self.fake_name(column)
        entry[col_alias] = source_alias
        return self._column_descriptor(source_alias, column, col_alias)

    def _column_descriptor(self, src: str, column: str, col_alias: str) -> ColumnDescriptor:
        entry = self.symtab.get(src)
        return ColumnDescriptor(
            schema=entry.schema if entry is not None else None,
            name=entry.name if entry is not None else None,
            alias=src,
            column=column,
            column_alias=col_alias,
        )

    def _add_col_to_coltab(self, column: str, source_alias: str) -> str:
        entry = self.coltab.get(column)
        if entry is None:
            self.coltab[column] = {column: source_alias}
            return column
        col_alias = self.fake_name(column)
        entry[col_alias] = source_alias
        return col_alias

    def _sync_coltab(self, old_alias: str, new_alias: str) -> None:
        for entry in self.coltab.values():
            for key, value in entry.items():
                if value == old_alias:
                    entry[key] = new_alias

    def __repr__(self) -> str:
        return f"ScopeSegment({self.name}, sources={list(self.symtab)})"


class ScopeCatalog:
    """Stack of scope segments for one generation call.

    Generation-time behaviours push and pop segments as query blocks are
    expanded; render-time behaviours re-enter the segment a node owns and
    resolve names through the cursor state machine of the current segment.
    """

    COLUMN_REUSE_PROBABILITY = 0.5

    def __init__(self, universe: Universe, rng: random.Random):
        self.universe = universe
        self.rng = rng
        self.segments: List[ScopeSegment] = []
        self._stack: List[ScopeSegment] = []
        self._names = PlaceholderNames()
        self._serial = itertools.count(1)

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def current(self) -> ScopeSegment:
        if not self._stack:
            raise ScopeSequenceError("current", "EMPTY", "no active scope segment")
        return self._stack[-1]

    def push(self) -> ScopeSegment:
        """Open a new query block nested in the current one."""
        parent = self._stack[-1] if self._stack else None
        segment = ScopeSegment(self.universe, self.rng, f"QB{next(self._serial)}",
                               parent=parent, names=self._names)
        if parent is not None:
            parent.add_inline_source(segment, SourceKind.CHILD)
            parent.children.append(segment)
        self.segments.append(segment)
        self._stack.append(segment)
        return segment

    def enter(self, segment: ScopeSegment) -> None:
        """Make an existing segment current again."""
        self._stack.append(segment)

    def pop(self) -> ScopeSegment:
        if not self._stack:
            raise ScopeSequenceError("pop", "EMPTY", "scope stack is empty")
        return self._stack.pop()

    # ------------------------------------------------------------------
    # Generation-time registration
    # ------------------------------------------------------------------

    def add_schema(self) -> SourceDescriptor:
        """Register a schema-qualified table for the sibling table name."""
        seg = self.current
        seg.set_flag(SCHEMA_FLAG)
        try:
            desc = seg.add_physical_source(SourceKind.TABLE)
        finally:
            seg.clear_flag(SCHEMA_FLAG)
        seg.pending_source = desc
        return desc

    def add_table(self) -> SourceDescriptor:
        seg = self.current
        if seg.pending_source is not None:
            desc, seg.pending_source = seg.pending_source, None
            return desc
        return seg.add_physical_source(SourceKind.TABLE)

    def add_source(self, kind: SourceKind) -> SourceDescriptor:
        return self.current.add_physical_source(kind)

    def define_alias(self) -> str:
        """Alias the most recently registered source of the current block."""
        seg = self.current
        if seg.last_source is None:
            return seg.fake_name("UNKNOWN_ALIAS")
        return seg.add_source_alias(seg.last_source).alias

    # ------------------------------------------------------------------
    # Render-time resolution
    # ------------------------------------------------------------------

    def choose_table(self) -> str:
        seg = self.current
        cur = seg.cursor
        if cur.state == ScopeState.ALIAS_CHOSEN:
            desc = seg.get_source(cur.alias)
        else:
            desc = seg.get_source()
        cur.state = ScopeState.NAME_RESOLVED
        cur.alias, cur.name, cur.column = desc.alias, desc.name, None
        return desc.name

    def choose_alias(self) -> str:
        seg = self.current
        cur = seg.cursor
        if cur.state == ScopeState.ALIAS_CHOSEN:
            return cur.alias
        if cur.state == ScopeState.NAME_RESOLVED:
            chosen = cur.alias
            cur.reset()
            return chosen
        desc = seg.get_source()
        cur.state = ScopeState.ALIAS_CHOSEN
        cur.alias, cur.name, cur.column = desc.alias, None, None
        return desc.alias

    def choose_column(self) -> str:
        seg = self.current
        cur = seg.cursor
        if cur.state in (ScopeState.ALIAS_CHOSEN, ScopeState.NAME_RESOLVED):
            source_alias = cur.alias
        else:
            source_alias = seg.get_source().alias

        existing = seg.get_source_column(source_alias)
        if not existing.is_empty and self.rng.random() < self.COLUMN_REUSE_PROBABILITY:
            column = existing.column
        else:
            column = seg.add_source_column(source_alias).column

        cur.state = ScopeState.COLUMN_CHOSEN
        cur.alias, cur.column = source_alias, column
        return column

    def choose_column_alias(self) -> str:
        seg = self.current
        cur = seg.cursor
        if cur.state != ScopeState.COLUMN_CHOSEN:
            raise ScopeSequenceError(
                "choose_column_alias", cur.state.name,
                f"segment {seg.name} has no column awaiting an alias",
            )
        desc = seg.add_column_alias(cur.column, cur.alias)
        col_alias = desc.column_alias or seg.fake_name("UNKNOWN_COLUMN_ALIAS")
        seg.export_column(col_alias)
        cur.reset()
        return col_alias

    def export_column(self) -> str:
        """Expose the column just chosen, unaliased, as a select-list output."""
        seg = self.current
        cur = seg.cursor
        if cur.state != ScopeState.COLUMN_CHOSEN:
            raise ScopeSequenceError(
                "export_column", cur.state.name,
                f"segment {seg.name} has no column to expose",
            )
        column = cur.column
        seg.export_column(column)
        cur.reset()
        return column

    def choose_schema(self) -> str:
        seg = self.current
        seg.cursor.reset()
        if seg.symtab:
            entry = seg.symtab[self.rng.choice(list(seg.symtab))]
            return entry.schema or UNKNOWN_SCHEMA
        schemas = self.universe.schemas()
        if not schemas:
            return UNKNOWN_SCHEMA
        return self.rng.choice(schemas)
