"""
Probe execution against PostgreSQL.

Runs the statements of a probe set one by one and counts how each ended.
Outcome keys are ``ok`` or the psycopg2 error class name (``SyntaxError``,
``UndefinedColumn``, ``QueryCanceled`` ...), which is what the scorers see.
"""
from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

try:
    import psycopg2
except ImportError:
    psycopg2 = None

logger = logging.getLogger(__name__)

OK = "ok"


@dataclass
class ExecutionStats:
    """Outcome counters for one probe set."""
    total: int = 0
    success: int = 0
    failed: int = 0
    outcomes: Counter = field(default_factory=Counter)
    elapsed: float = 0.0

    def record(self, outcome: str) -> None:
        self.total += 1
        self.outcomes[outcome] += 1
        if outcome == OK:
            self.success += 1
        else:
            self.failed += 1


def read_probe_file(path: str) -> List[str]:
    """Statements of a ``.prb`` file; one per line, ``;`` terminated."""
    statements = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("--"):
            continue
        statements.append(line[:-1] if line.endswith(";") else line)
    return statements


class ProbeExecutor:
    """Executes probe statements sequentially over one connection."""

    def __init__(self, dsn: str, statement_timeout: int = 1000):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is required for ProbeExecutor")
        self.dsn = dsn
        self.statement_timeout = statement_timeout
        self._conn = None

    def _get_connection(self):
        if self._conn is None or self._conn.closed:
            conn = psycopg2.connect(self.dsn)
            conn.autocommit = True
            if self.statement_timeout:
                with conn.cursor() as cur:
                    cur.execute(f"SET statement_timeout = {int(self.statement_timeout)}")
            self._conn = conn
        return self._conn

    def _force_reconnect(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except psycopg2.Error as e:
                logger.debug("Ignoring error while closing connection: %s", e)
        self._conn = None

    def execute(self, statement: str) -> str:
        """Run one statement and return its outcome key."""
        try:
            conn = self._get_connection()
            with conn.cursor() as cur:
                cur.execute(statement)
            return OK
        except psycopg2.OperationalError as e:
            # Server gone or connection lost; reconnect for the next probe.
            self._force_reconnect()
            return type(e).__name__
        except psycopg2.Error as e:
            return type(e).__name__

    def run(self, statements: Iterable[str]) -> ExecutionStats:
        stats = ExecutionStats()
        start = time.time()
        for statement in statements:
            if not statement or not statement.strip():
                continue
            stats.record(self.execute(statement))
        stats.elapsed = time.time() - start
        logger.info("Executed %d probes: %d ok, %d failed in %.1fs",
                    stats.total, stats.success, stats.failed, stats.elapsed)
        return stats

    def run_file(self, path: str) -> ExecutionStats:
        return self.run(read_probe_file(path))

    def close(self) -> None:
        self._force_reconnect()

    def __enter__(self) -> "ProbeExecutor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
