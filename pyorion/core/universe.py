"""
The universe: a read-only catalog of the real database objects that generated
statements may refer to.

Objects are partitioned by kind (tables, views, materialized views and
sequences). The catalog is built once and shared by reference; scope segments
never mutate it.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pyorion.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "SourceKind",
    "PHYSICAL_KINDS",
    "SourceObject",
    "Universe",
]


class SourceKind(str, Enum):
    TABLE = "TABLE"
    VIEW = "VIEW"
    MVIEW = "MVIEW"
    SEQUENCE = "SEQUENCE"
    # Inline row sources linking nested query blocks
    PARENT = "PARENT"
    CHILD = "CHILD"


PHYSICAL_KINDS = (SourceKind.TABLE, SourceKind.VIEW, SourceKind.MVIEW, SourceKind.SEQUENCE)

_KIND_ALIASES = {
    "TABLE": SourceKind.TABLE,
    "BASE TABLE": SourceKind.TABLE,
    "VIEW": SourceKind.VIEW,
    "MVIEW": SourceKind.MVIEW,
    "MATERIALIZED VIEW": SourceKind.MVIEW,
    "MATERIALIZED_VIEW": SourceKind.MVIEW,
    "SEQUENCE": SourceKind.SEQUENCE,
}


def parse_kind(value: Any) -> SourceKind:
    if isinstance(value, SourceKind):
        return value
    kind = _KIND_ALIASES.get(str(value).strip().upper())
    if kind is None or kind not in PHYSICAL_KINDS:
        raise ConfigurationError(f"Unknown object kind: {value!r}")
    return kind


@dataclass(frozen=True)
class SourceObject:
    """A database object known to the universe."""
    name: str
    kind: SourceKind
    schema: Optional[str] = None
    columns: Tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name


@dataclass
class Universe:
    """Objects keyed by their qualified name, partitioned by kind."""
    objects: Dict[str, SourceObject] = field(default_factory=dict)

    def __post_init__(self):
        self._by_kind: Dict[SourceKind, List[str]] = {k: [] for k in PHYSICAL_KINDS}
        for key, obj in self.objects.items():
            self._by_kind[obj.kind].append(key)

    def add(self, obj: SourceObject) -> None:
        if obj.key in self.objects:
            raise ConfigurationError(f"Object '{obj.key}' defined twice in universe")
        self.objects[obj.key] = obj
        self._by_kind[obj.kind].append(obj.key)

    def keys_of(self, kind: SourceKind) -> List[str]:
        return list(self._by_kind.get(kind, []))

    def get(self, key: str) -> Optional[SourceObject]:
        return self.objects.get(key)

    def schemas(self) -> List[str]:
        """Distinct schema names in insertion order."""
        seen: Dict[str, None] = {}
        for obj in self.objects.values():
            if obj.schema is not None:
                seen.setdefault(obj.schema)
        return list(seen)

    def __len__(self) -> int:
        return len(self.objects)

    def __contains__(self, key: object) -> bool:
        return key in self.objects

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> "Universe":
        """Build from ``{key: {schema, name, kind|type, columns}}``."""
        universe = cls()
        for key, spec in data.items():
            try:
                obj = SourceObject(
                    name=spec.get("name", key),
                    kind=parse_kind(spec.get("kind", spec.get("type", "TABLE"))),
                    schema=spec.get("schema"),
                    columns=tuple(spec.get("columns", ())),
                )
            except AttributeError as e:
                raise ConfigurationError(f"Malformed universe entry '{key}': {e}") from e
            universe.add(obj)
        return universe

    @classmethod
    def from_objects(cls, objects: Iterable[SourceObject]) -> "Universe":
        universe = cls()
        for obj in objects:
            universe.add(obj)
        return universe

    @classmethod
    def from_file(cls, path: str) -> "Universe":
        p = Path(path)
        if not p.exists():
            raise ConfigurationError(f"No metadata file |{path}|")
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Metadata file {path} is not valid JSON: {e}") from e
        universe = cls.from_dict(data)
        logger.info("Loaded %d objects from %s", len(universe), path)
        return universe

    @classmethod
    def default(cls) -> "Universe":
        """The classic demo schema."""
        return cls.from_objects([
            SourceObject("bonus", SourceKind.TABLE, "scott", ("ename", "job", "sal", "comm")),
            SourceObject("dept", SourceKind.TABLE, "scott", ("deptno", "dname", "loc")),
            SourceObject("emp", SourceKind.TABLE, "scott",
                         ("empno", "ename", "job", "mgr", "hiredate", "sal", "comm", "deptno")),
            SourceObject("salgrade", SourceKind.TABLE, "scott", ("grade", "losal", "hisal")),
            SourceObject("emp_summary", SourceKind.VIEW, "scott", ("deptno", "total_sal")),
            SourceObject("dept_stats", SourceKind.MVIEW, "scott", ("deptno", "headcount")),
            SourceObject("emp_seq", SourceKind.SEQUENCE, "scott"),
        ])
