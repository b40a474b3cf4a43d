"""PostgreSQL access for the analytics readers.

Reports fan their reads out across worker threads (see core.utils.run_parallel),
so a connection belongs to the thread that checked it out. A worker borrows one
on its first execute() and hands it back through release_if_held() when its
read is done; request threads do the same from the API's per-request
dependency. Nothing on the request path writes, so a held connection only ever
carries a read transaction that can be rolled back on return.

Session settings (UTC clock, statement timeout) are pinned per connection via
the libpq options string, which keeps every date cast and timeout identical
across the pool.
"""

import logging
import threading
from pathlib import Path

import psycopg
from psycopg.pq import TransactionStatus
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from milestone.config import DatabaseConfig

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Backlog alone issues five parallel reads; leave headroom for concurrent requests.
POOL_MIN_SIZE = 2
POOL_MAX_SIZE = 20

_TX_OPEN = (TransactionStatus.INTRANS, TransactionStatus.INERROR)


class Database:
    """Connection pool whose connections are pinned to the borrowing thread."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: ConnectionPool | None = None
        self._local = threading.local()

    def connect(self) -> None:
        self._pool = ConnectionPool(
            self.config.dsn,
            min_size=POOL_MIN_SIZE,
            max_size=POOL_MAX_SIZE,
            kwargs={
                "row_factory": dict_row,
                "autocommit": False,
                "options": self.config.options,
            },
        )
        self._pool.wait()
        logger.info(
            "Pool open on %s:%s/%s (%d-%d connections, statement_timeout=%dms)",
            self.config.host, self.config.port, self.config.name,
            POOL_MIN_SIZE, POOL_MAX_SIZE, self.config.statement_timeout_ms,
        )

    def close(self) -> None:
        self._give_back()
        if self._pool:
            self._pool.close()
            self._pool = None

    @property
    def conn(self) -> psycopg.Connection:
        """This thread's connection; borrowed from the pool on first use.

        A connection left in a failed read (INERROR) is rolled back before the
        thread gets it again.
        """
        held = getattr(self._local, "conn", None)
        if held is not None and not held.closed:
            if held.info.transaction_status == TransactionStatus.INERROR:
                logger.warning("Discarding failed read transaction before reuse")
                held.rollback()
            return held

        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        self._local.conn = self._pool.getconn()
        return self._local.conn

    def _give_back(self) -> None:
        held = getattr(self._local, "conn", None)
        if held is None or self._pool is None:
            return
        try:
            self._pool.putconn(held)
        except Exception:
            logger.warning("Pool refused returned connection", exc_info=True)
        self._local.conn = None

    def execute(self, query: str, params: tuple | list | dict | None = None) -> list[dict]:
        """Run one statement on this thread's connection and return its rows as dicts."""
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall() if cur.description else []

    def release_if_held(self) -> None:
        """Hand this thread's connection back, rolling back its read transaction first.

        Called once per worker read and once per HTTP request. Safe to call when
        the thread holds nothing.
        """
        held = getattr(self._local, "conn", None)
        if held is None or held.closed:
            return
        if held.info.transaction_status in _TX_OPEN:
            try:
                held.rollback()
            except psycopg.Error:
                logger.warning("Rollback failed while returning connection", exc_info=True)
        self._give_back()

    def run_migrations(self) -> None:
        """Create the goal tables on startup. Runs on the main thread before serving."""
        self.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id SERIAL PRIMARY KEY,
                filename VARCHAR(255) UNIQUE NOT NULL,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)
        self.conn.commit()
        applied = {row["filename"] for row in self.execute("SELECT filename FROM _migrations")}

        pending = [f for f in sorted(MIGRATIONS_DIR.glob("*.sql")) if f.name not in applied]
        for path in pending:
            try:
                self.execute(path.read_text())
                self.execute("INSERT INTO _migrations (filename) VALUES (%s)", (path.name,))
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                self.release_if_held()
                logger.exception("Schema migration %s failed", path.name)
                raise
            logger.info("Schema migration %s applied", path.name)

        self.release_if_held()
        logger.info("Schema up to date (%d applied this start, %d already present)", len(pending), len(applied))
