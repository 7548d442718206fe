"""
Postgres adapter for the remote document store.

Each user's video documents live as JSONB rows in ``video_documents``. Every
write issues ``pg_notify`` with the owning user id; subscriptions LISTEN on
that channel, reload the user's documents on each notification and emit the
difference against what they last delivered, together with the full id
snapshot.
"""

import logging
import threading
from typing import Optional, Dict, Any, Iterable

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .base import (
    DocumentStoreAdapter,
    SubscriptionHandle,
    BatchCallback,
    ErrorCallback,
    snapshot_changes,
)
from ..errors import RemoteWriteFailed, SubscriptionFailed
from ..logging_setup import log_exception

logger = logging.getLogger("video_uploader")


class PostgresSubscription(SubscriptionHandle):
    """LISTEN-driven subscription that reconnects with backoff"""

    def __init__(self, store: 'PostgresDocumentStore', user_id: str,
                 on_batch: BatchCallback, on_error: ErrorCallback):
        self.store = store
        self.user_id = user_id
        self.on_batch = on_batch
        self.on_error = on_error
        self.delivered: Optional[Dict[str, Dict[str, Any]]] = None
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"subscription-{user_id}", daemon=True
        )

    @property
    def active(self) -> bool:
        return not self._stop.is_set() and self._thread.is_alive()

    def start(self) -> 'PostgresSubscription':
        self._thread.start()
        return self

    def _deliver(self, current: Dict[str, Dict[str, Any]]) -> None:
        if self._stop.is_set():
            return
        first = self.delivered is None
        batch = snapshot_changes(self.delivered or {}, current)
        self.delivered = current
        if batch.events or first:
            self.on_batch(batch)

    def _run(self) -> None:
        backoff_ms = self.store.retry_ms

        while not self._stop.is_set():
            try:
                with psycopg.connect(
                    self.store.database_url,
                    autocommit=True,
                    connect_timeout=self.store.timeout,
                    application_name="video_uploader_listener",
                ) as conn:
                    conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.store.channel)))
                    self._deliver(self.store.load_documents(conn, self.user_id))
                    backoff_ms = self.store.retry_ms
                    logger.info(f"Listening for changes to user {self.user_id}")

                    while not self._stop.is_set():
                        for notify in conn.notifies(timeout=self.store.poll_timeout, stop_after=1):
                            if notify.payload == self.user_id:
                                self._deliver(self.store.load_documents(conn, self.user_id))

            except psycopg.Error as e:
                if self._stop.is_set():
                    break
                self.on_error(SubscriptionFailed(f"Change stream for user {self.user_id} failed: {e}"))
                logger.warning(f"Reconnecting change stream in {backoff_ms / 1000.0:.1f}s")
                self._stop.wait(backoff_ms / 1000.0)
                backoff_ms = min(backoff_ms * self.store.backoff_multiplier, self.store.max_backoff_ms)

        logger.info(f"Change stream for user {self.user_id} stopped")

    def close(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.store.poll_timeout + 1)


class PostgresDocumentStore(DocumentStoreAdapter):
    """Postgres implementation of the document store adapter"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10,
                 channel: str = "video_documents", retry_ms: int = 1500,
                 backoff_multiplier: float = 1.5, max_backoff_ms: int = 12000,
                 poll_timeout: float = 1.0):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.channel = channel
        self.retry_ms = retry_ms
        self.backoff_multiplier = backoff_multiplier
        self.max_backoff_ms = max_backoff_ms
        self.poll_timeout = poll_timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = ConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                kwargs={
                    "connect_timeout": self.timeout,
                    "application_name": "video_uploader"
                },
                open=True,
            )
            logger.info("Postgres document store connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres document store: {e}")
            raise

    def _bootstrap_schema(self):
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS video_documents (
                        user_id TEXT NOT NULL,
                        id TEXT NOT NULL,
                        document JSONB NOT NULL,
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        PRIMARY KEY (user_id, id)
                    )
                """)
                conn.commit()
                logger.info("Postgres document store schema validated")

    def _write(self, description: str, user_id: str, query: str, params: tuple) -> int:
        """Run one write and notify subscribers in the same transaction"""
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    rowcount = cur.rowcount
                    cur.execute("SELECT pg_notify(%s, %s)", (self.channel, user_id))
                conn.commit()
                return rowcount
        except psycopg.Error as e:
            logger.error(f"Error during {description}: {e}")
            raise RemoteWriteFailed(f"{description} failed: {e}") from e

    def set(self, user_id: str, record_id: str, document: Dict[str, Any]) -> None:
        self._write(
            f"set {record_id}",
            user_id,
            """
                INSERT INTO video_documents (user_id, id, document)
                VALUES (%s, %s, %s)
                ON CONFLICT (user_id, id)
                DO UPDATE SET document = EXCLUDED.document, updated_at = now()
            """,
            (user_id, record_id, Jsonb(document)),
        )

    def update(self, user_id: str, record_id: str, fields: Dict[str, Any],
               delete_fields: Iterable[str] = ()) -> None:
        rowcount = self._write(
            f"update {record_id}",
            user_id,
            """
                UPDATE video_documents
                SET document = (document || %s) - %s::text[], updated_at = now()
                WHERE user_id = %s AND id = %s
            """,
            (Jsonb(fields), list(delete_fields), user_id, record_id),
        )
        if rowcount == 0:
            raise RemoteWriteFailed(f"No document {record_id} to update")

    def delete(self, user_id: str, record_id: str) -> None:
        self._write(
            f"delete {record_id}",
            user_id,
            "DELETE FROM video_documents WHERE user_id = %s AND id = %s",
            (user_id, record_id),
        )

    def get(self, user_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT document FROM video_documents WHERE user_id = %s AND id = %s",
                    (user_id, record_id),
                )
                row = cur.fetchone()
                return row[0] if row else None

    def load_documents(self, conn, user_id: str) -> Dict[str, Dict[str, Any]]:
        """Full snapshot of a user's documents keyed by id"""
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, document FROM video_documents WHERE user_id = %s",
                (user_id,),
            )
            return {row[0]: row[1] for row in cur.fetchall()}

    def subscribe(self, user_id: str, on_batch: BatchCallback,
                  on_error: ErrorCallback) -> PostgresSubscription:
        return PostgresSubscription(self, user_id, on_batch, on_error).start()

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres document store connection pool closed")
