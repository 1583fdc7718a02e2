from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

import db
from config import Settings
from errors import AuthorizationError, ConnectivityError
from members import SqliteMemberStore, SupabaseMemberStore, make_store


# ---------- SQLite ----------

def test_create_and_fetch(sqlite_db):
    store = SqliteMemberStore()
    created = store.create_member("  Jane Doe ", date(2026, 1, 1), date(2026, 2, 1))

    assert created.full_name == "Jane Doe"
    members = store.fetch_all_members()
    assert members == [created]
    assert store.get_member(created.id) == created


def test_fetch_newest_first(sqlite_db):
    store = SqliteMemberStore()
    first = store.create_member("First", date(2026, 1, 1), date(2026, 2, 1))
    second = store.create_member("Second", date(2026, 1, 1), date(2026, 2, 1))
    assert [m.id for m in store.fetch_all_members()] == [second.id, first.id]


def test_empty_table(sqlite_db):
    assert SqliteMemberStore().fetch_all_members() == []


def test_update_keeps_portrait_when_not_replaced(sqlite_db):
    store = SqliteMemberStore()
    m = store.create_member("Jane", date(2026, 1, 1), date(2026, 2, 1), "portraits/a.png")

    assert store.update_member(m.id, "Jane Roe", date(2026, 1, 1), date(2026, 6, 1)) is True

    updated = store.get_member(m.id)
    assert updated.full_name == "Jane Roe"
    assert updated.end_date == date(2026, 6, 1)
    assert updated.portrait_url == "portraits/a.png"

    store.update_member(m.id, "Jane Roe", date(2026, 1, 1), date(2026, 6, 1), "portraits/b.png")
    assert store.get_member(m.id).portrait_url == "portraits/b.png"


def test_delete(sqlite_db):
    store = SqliteMemberStore()
    m = store.create_member("Jane", date(2026, 1, 1), date(2026, 2, 1))
    assert store.delete_member(m.id) is True
    assert store.delete_member(m.id) is False
    assert store.get_member(m.id) is None


def test_sqlite_failure_is_connectivity_error(tmp_path, monkeypatch):
    # a directory cannot be opened as a database
    monkeypatch.setattr(db, "DB_FILE", tmp_path)
    with pytest.raises(ConnectivityError):
        SqliteMemberStore().fetch_all_members()


def test_make_store_sqlite(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", db.DB_FILE)
    store = make_store(Settings(db_file=tmp_path / "x.db"))
    assert isinstance(store, SqliteMemberStore)
    assert db.DB_FILE == tmp_path / "x.db"


def test_make_store_unknown_backend():
    with pytest.raises(ValueError):
        make_store(Settings(member_backend="mongo"))


# ---------- Supabase ----------

class FakeQuery:
    def __init__(self, client):
        self.client = client

    def __getattr__(self, name):
        def call(*args, **kwargs):
            self.client.calls.append((name, args, kwargs))
            return self
        return call

    def execute(self):
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=self.client.data)


class FakeSupabase:
    def __init__(self, data=None, error=None):
        self.data = data if data is not None else []
        self.error = error
        self.calls = []

    def table(self, name):
        self.calls.append(("table", (name,), {}))
        return FakeQuery(self)


RECORD = {
    "id": "u1",
    "fullName": "Jane Doe",
    "startDate": "2026-01-01T00:00:00.000Z",
    "endDate": "2026-02-01T00:00:00.000Z",
    "profilePictureUrl": "https://example.test/jane.png",
    "createdAt": "2026-01-01T10:00:00+00:00",
}


def test_supabase_fetch_maps_records():
    client = FakeSupabase(data=[RECORD])
    members = SupabaseMemberStore(client).fetch_all_members()

    assert len(members) == 1
    m = members[0]
    assert (m.id, m.full_name, m.start_date, m.end_date) == ("u1", "Jane Doe", date(2026, 1, 1), date(2026, 2, 1))
    assert m.portrait_url == "https://example.test/jane.png"
    assert ("table", ("users",), {}) in client.calls
    assert ("order", ("createdAt",), {"desc": True}) in client.calls


def test_supabase_create_returns_inserted_record():
    client = FakeSupabase(data=[RECORD])
    m = SupabaseMemberStore(client).create_member("Jane Doe", date(2026, 1, 1), date(2026, 2, 1))
    assert m.id == "u1"
    name, args, _ = next(c for c in client.calls if c[0] == "insert")
    assert args[0]["fullName"] == "Jane Doe"
    assert args[0]["endDate"] == "2026-02-01"


def test_supabase_permission_error():
    err = APIError({"message": "permission denied for table users", "code": "42501", "hint": None, "details": None})
    with pytest.raises(AuthorizationError):
        SupabaseMemberStore(FakeSupabase(error=err)).fetch_all_members()


def test_supabase_other_api_error():
    err = APIError({"message": "relation does not exist", "code": "42P01", "hint": None, "details": None})
    with pytest.raises(ConnectivityError):
        SupabaseMemberStore(FakeSupabase(error=err)).fetch_all_members()


def test_supabase_network_error():
    err = httpx.ConnectError("connection refused")
    with pytest.raises(ConnectivityError):
        SupabaseMemberStore(FakeSupabase(error=err)).fetch_all_members()


def test_supabase_delete_missing_member():
    assert SupabaseMemberStore(FakeSupabase(data=[])).delete_member("nope") is False
