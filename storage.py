#!/usr/bin/env python3
"""
Mimigram persistence store.

Whole-collection load/save of the six record collections
(users, profiles, chats, messages, groups, stickers).

• JsonFileStore: one JSON document per collection under a data directory
• PostgresStore: one JSONB row per collection (psycopg2 pool)
• open_store(settings): picks the backend from settings / env

Neither backend does any concurrency control: a save replaces the whole
collection, whatever was read before it.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import psycopg2
from psycopg2.extras import Json
from psycopg2.pool import ThreadedConnectionPool

from constants import COLLECTION_DEFAULTS, DEFAULT_DATA_DIR, get_db_connection_string, redact_postgres_dsn

log = logging.getLogger(__name__)


def _check_collection(name: str) -> None:
    if name not in COLLECTION_DEFAULTS:
        raise KeyError(f"Unknown collection: {name}")


def _empty(name: str) -> Any:
    return COLLECTION_DEFAULTS[name]()


class JsonFileStore:
    """Collections as ``<data_dir>/<name>.json`` files."""

    def __init__(self, data_dir: str | os.PathLike = DEFAULT_DATA_DIR):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def load(self, name: str) -> Any:
        _check_collection(name)
        path = self._path(name)
        if not path.exists():
            return _empty(name)
        try:
            with path.open("r", encoding="utf-8") as fp:
                text = fp.read().strip()
            if not text:
                return _empty(name)
            data = json.loads(text)
        except (OSError, ValueError) as exc:
            log.error("Could not read %s, starting from empty: %s", path, exc)
            return _empty(name)

        if not isinstance(data, type(_empty(name))):
            log.error("Unexpected shape in %s (%s), starting from empty", path, type(data).__name__)
            return _empty(name)
        return data

    def save(self, name: str, data: Any) -> None:
        _check_collection(name)
        with self._path(name).open("w", encoding="utf-8") as fp:
            json.dump(data, fp, ensure_ascii=False, indent=2)


class PostgresStore:
    """Collections as rows of a single ``mimigram_collections`` table."""

    TABLE = "mimigram_collections"

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 10, pool: ThreadedConnectionPool | None = None):
        self.dsn = dsn
        self._pool = pool or ThreadedConnectionPool(minconn=int(minconn), maxconn=int(maxconn), dsn=dsn)
        log.info("Postgres connection pool ready (min=%s max=%s)", minconn, maxconn)
        self.init_schema()

    def _acquire(self):
        return self._pool.getconn()

    def _release(self, conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error:
            pass
        self._pool.putconn(conn)

    def init_schema(self) -> None:
        conn = self._acquire()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.TABLE} (
                        name TEXT PRIMARY KEY,
                        data JSONB NOT NULL
                    );
                    """
                )
            conn.commit()
        finally:
            self._release(conn)

    def load(self, name: str) -> Any:
        _check_collection(name)
        conn = self._acquire()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT data FROM {self.TABLE} WHERE name = %s;", (name,))
                row = cur.fetchone()
        finally:
            self._release(conn)
        if not row or row[0] is None:
            return _empty(name)
        return row[0]

    def save(self, name: str, data: Any) -> None:
        _check_collection(name)
        conn = self._acquire()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {self.TABLE} (name, data)
                    VALUES (%s, %s)
                    ON CONFLICT (name) DO UPDATE SET data = EXCLUDED.data;
                    """,
                    (name, Json(data)),
                )
            conn.commit()
        except psycopg2.Error as exc:
            log.error("Failed to save collection %s: %s", name, exc)
            raise
        finally:
            self._release(conn)

    def close(self) -> None:
        self._pool.closeall()


def open_store(settings: dict):
    """Return the store configured by settings (Postgres when a DSN is set)."""
    dsn = get_db_connection_string(settings)
    if dsn:
        log.info("Using Postgres store: %s", redact_postgres_dsn(dsn))
        return PostgresStore(dsn)

    data_dir = settings.get("data_dir") or DEFAULT_DATA_DIR
    log.info("Using JSON file store in %s", data_dir)
    return JsonFileStore(data_dir)
