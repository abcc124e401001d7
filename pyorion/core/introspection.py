"""
Database Introspection Logic.

Builds a Universe from the PostgreSQL system catalogs.
"""
import logging
from typing import List, Sequence, Tuple

from pyorion.core.universe import SourceKind, SourceObject, Universe

try:
    import psycopg2
except ImportError:
    psycopg2 = None

logger = logging.getLogger(__name__)

# pg_class.relkind -> universe bucket; partitioned tables count as tables.
_RELKINDS = {
    "r": SourceKind.TABLE,
    "p": SourceKind.TABLE,
    "v": SourceKind.VIEW,
    "m": SourceKind.MVIEW,
    "S": SourceKind.SEQUENCE,
}


class UniverseProvider:
    """Handles database introspection to populate the universe."""

    def __init__(self, dsn: str, schemas: Sequence[str] = ("public",)):
        self.dsn = dsn
        self.schemas = list(schemas)

    def introspect(self) -> Universe:
        """Connect to DB and return the objects it holds; empty on failure."""
        if not psycopg2:
            logger.warning("psycopg2 not installed, cannot introspect %s", self.dsn)
            return Universe()

        universe = Universe()
        conn = None
        try:
            conn = psycopg2.connect(self.dsn)
            cur = conn.cursor()
            for oid, schema, name, relkind in self._fetch_relations(cur):
                columns = () if relkind == "S" else tuple(self._fetch_columns(cur, oid))
                universe.add(SourceObject(name, _RELKINDS[relkind], schema, columns))
        except psycopg2.OperationalError as e:
            logger.warning("Database connection failed: %s", e)
        except psycopg2.DatabaseError as e:
            logger.warning("Database query failed: %s", e)
        except Exception as e:
            logger.warning("Universe introspection failed: %s", e)
        finally:
            if conn:
                conn.close()

        logger.info("Introspected %d objects from schemas %s", len(universe), self.schemas)
        return universe

    def _fetch_relations(self, cur) -> List[Tuple[int, str, str, str]]:
        cur.execute("""
            SELECT c.oid, n.nspname, c.relname, c.relkind
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = ANY(%s)
            AND c.relkind IN ('r', 'p', 'v', 'm', 'S')
            ORDER BY n.nspname, c.relname
        """, (self.schemas,))
        return cur.fetchall()

    def _fetch_columns(self, cur, oid: int) -> List[str]:
        cur.execute("""
            SELECT a.attname
            FROM pg_attribute a
            WHERE a.attrelid = %s AND a.attnum > 0 AND NOT a.attisdropped
            ORDER BY a.attnum
        """, (oid,))
        return [row[0] for row in cur.fetchall()]
