"""Tests for the collection stores."""

import json

import pytest
from psycopg2.extras import Json

from storage import JsonFileStore, PostgresStore, open_store


# ───── JSON files ─────

def test_missing_collections_load_empty(store):
    assert store.load("users") == []
    for name in ("profiles", "chats", "messages", "groups", "stickers"):
        assert store.load(name) == {}


def test_save_then_load(store):
    store.save("messages", {"a-b": [{"id": "1", "text": "héllo"}]})
    assert store.load("messages") == {"a-b": [{"id": "1", "text": "héllo"}]}


def test_save_replaces_whole_collection(store):
    store.save("groups", {"g1": {}, "g2": {}})
    store.save("groups", {"g3": {}})
    assert store.load("groups") == {"g3": {}}


@pytest.mark.parametrize("content", ["", "{not json", json.dumps({"wrong": "shape"})])
def test_corrupt_or_wrong_shape_loads_empty(store, content):
    (store.data_dir / "users.json").write_text(content, encoding="utf-8")
    assert store.load("users") == []


def test_unknown_collection(store):
    with pytest.raises(KeyError):
        store.load("secrets")
    with pytest.raises(KeyError):
        store.save("secrets", {})


def test_open_store_defaults_to_json(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DB_CONNECTION_STRING", raising=False)
    opened = open_store({"data_dir": str(tmp_path / "d")})
    assert isinstance(opened, JsonFileStore)
    assert opened.data_dir == tmp_path / "d"


# ───── Postgres (fake pool) ─────

class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((" ".join(sql.split()), params))
        if sql.lstrip().startswith("INSERT"):
            name, payload = params
            self.conn.rows[name] = payload.adapted
        elif sql.lstrip().startswith("SELECT"):
            self.conn.last = self.conn.rows.get(params[0])

    def fetchone(self):
        return None if self.conn.last is None else (self.conn.last,)


class FakeConnection:
    def __init__(self):
        self.rows = {}
        self.executed = []
        self.last = None
        self.commits = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        pass


class FakePool:
    def __init__(self):
        self.conn = FakeConnection()
        self.out = 0
        self.closed = False

    def getconn(self):
        self.out += 1
        return self.conn

    def putconn(self, conn):
        self.out -= 1

    def closeall(self):
        self.closed = True


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def pg(pool):
    return PostgresStore("postgresql://test@localhost/test", pool=pool)


def test_postgres_creates_table(pg, pool):
    sql, _ = pool.conn.executed[0]
    assert sql.startswith("CREATE TABLE IF NOT EXISTS mimigram_collections")
    assert pool.conn.commits == 1


def test_postgres_round_trip_and_returns_connections(pg, pool):
    assert pg.load("chats") == {}
    pg.save("chats", {"u1": [{"id": "u2"}]})
    assert pg.load("chats") == {"u1": [{"id": "u2"}]}

    insert = [p for s, p in pool.conn.executed if s.startswith("INSERT")]
    assert isinstance(insert[0][1], Json)
    assert "ON CONFLICT (name) DO UPDATE" in [s for s, _ in pool.conn.executed if s.startswith("INSERT")][0]
    assert pool.out == 0


def test_postgres_close(pg, pool):
    pg.close()
    assert pool.closed


def test_postgres_unknown_collection(pg):
    with pytest.raises(KeyError):
        pg.load("secrets")
