"""
members.py
Member persistence: a SQLite store (default) and a Supabase store.

Both stores expose the same methods and raise only errors.MemberStoreError
subclasses, so callers never see sqlite3 or HTTP exceptions.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

import db
from config import Settings
from errors import AuthorizationError, ConnectivityError
from models import Member
from utils import parse_iso

logger = logging.getLogger(__name__)

# PostgREST / Postgres codes that mean "you may not do this"
AUTH_ERROR_CODES = {"42501", "PGRST301", "PGRST302", "401", "403"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class SqliteMemberStore:
    """Members table in the local SQLite database (see db.py)."""

    @contextmanager
    def _translate_errors(self, action: str):
        try:
            yield
        except sqlite3.Error as e:
            logger.error("SQLite error while trying to %s: %s", action, e)
            raise ConnectivityError(f"Could not {action}: {e}") from e

    @staticmethod
    def _row_to_member(row) -> Member:
        return Member(
            id=row["id"],
            full_name=row["full_name"],
            start_date=parse_iso(row["start_date"]),
            end_date=parse_iso(row["end_date"]),
            portrait_url=row["portrait_url"],
            created_at=row["created_at"],
        )

    def fetch_all_members(self) -> list[Member]:
        with self._translate_errors("load members"):
            rows = db.fetch_all("SELECT * FROM members ORDER BY created_at DESC, rowid DESC")
        return [self._row_to_member(r) for r in rows]

    def get_member(self, member_id: str) -> Member | None:
        with self._translate_errors("load member"):
            row = db.fetch_one("SELECT * FROM members WHERE id = ?", (member_id,))
        return self._row_to_member(row) if row else None

    def create_member(self, full_name: str, start_date: date, end_date: date, portrait_url: str | None = None) -> Member:
        member = Member(
            id=_new_id(),
            full_name=full_name.strip(),
            start_date=start_date,
            end_date=end_date,
            portrait_url=portrait_url,
            created_at=_now_iso(),
        )
        with self._translate_errors("register member"):
            db.execute(
                """
                INSERT INTO members(id, full_name, start_date, end_date, portrait_url, created_at)
                VALUES(?,?,?,?,?,?)
                """,
                (
                    member.id,
                    member.full_name,
                    member.start_date.isoformat(),
                    member.end_date.isoformat(),
                    member.portrait_url,
                    member.created_at,
                ),
            )
        logger.info("Registered member %s (%s)", member.id, member.full_name)
        return member

    def update_member(self, member_id: str, full_name: str, start_date: date, end_date: date,
                      portrait_url: str | None = None) -> bool:
        with self._translate_errors("update member"):
            changed = db.execute(
                """
                UPDATE members SET full_name=?, start_date=?, end_date=?,
                    portrait_url=COALESCE(?, portrait_url)
                WHERE id=?
                """,
                (full_name.strip(), start_date.isoformat(), end_date.isoformat(), portrait_url, member_id),
            )
        logger.info("Updated member %s", member_id)
        return changed > 0

    def delete_member(self, member_id: str) -> bool:
        with self._translate_errors("delete member"):
            changed = db.execute("DELETE FROM members WHERE id = ?", (member_id,))
        logger.info("Deleted member %s", member_id)
        return changed > 0


class SupabaseMemberStore:
    """`users` table in a Supabase project (camelCase columns)."""

    TABLE = "users"

    def __init__(self, client: Client):
        self.client = client

    @contextmanager
    def _translate_errors(self, action: str):
        try:
            yield
        except APIError as e:
            logger.error("Supabase rejected %s: %s (code=%s)", action, e.message, e.code)
            if str(e.code) in AUTH_ERROR_CODES:
                raise AuthorizationError(f"Not allowed to {action}: {e.message}") from e
            raise ConnectivityError(f"Could not {action}: {e.message}") from e
        except httpx.HTTPError as e:
            logger.error("Supabase unreachable during %s: %s", action, e)
            raise ConnectivityError(f"Could not {action}: {e}") from e

    @staticmethod
    def _record_to_member(record: dict) -> Member:
        return Member(
            id=str(record["id"]),
            full_name=record["fullName"],
            start_date=parse_iso(record["startDate"]),
            end_date=parse_iso(record["endDate"]),
            portrait_url=record.get("profilePictureUrl") or None,
            created_at=record.get("createdAt"),
        )

    def _table(self):
        return self.client.table(self.TABLE)

    def fetch_all_members(self) -> list[Member]:
        with self._translate_errors("load members"):
            res = self._table().select("*").order("createdAt", desc=True).execute()
        return [self._record_to_member(r) for r in res.data or []]

    def get_member(self, member_id: str) -> Member | None:
        with self._translate_errors("load member"):
            res = self._table().select("*").eq("id", member_id).limit(1).execute()
        return self._record_to_member(res.data[0]) if res.data else None

    def create_member(self, full_name: str, start_date: date, end_date: date, portrait_url: str | None = None) -> Member:
        payload = {
            "id": _new_id(),
            "fullName": full_name.strip(),
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
            "profilePictureUrl": portrait_url,
            "createdAt": _now_iso(),
        }
        with self._translate_errors("register member"):
            res = self._table().insert(payload).execute()
        record = res.data[0] if res.data else payload
        logger.info("Registered member %s (%s)", record["id"], record["fullName"])
        return self._record_to_member(record)

    def update_member(self, member_id: str, full_name: str, start_date: date, end_date: date,
                      portrait_url: str | None = None) -> bool:
        payload = {
            "fullName": full_name.strip(),
            "startDate": start_date.isoformat(),
            "endDate": end_date.isoformat(),
        }
        if portrait_url:
            payload["profilePictureUrl"] = portrait_url
        with self._translate_errors("update member"):
            res = self._table().update(payload).eq("id", member_id).execute()
        logger.info("Updated member %s", member_id)
        return bool(res.data)

    def delete_member(self, member_id: str) -> bool:
        with self._translate_errors("delete member"):
            res = self._table().delete().eq("id", member_id).execute()
        logger.info("Deleted member %s", member_id)
        return bool(res.data)


def make_supabase_client(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError(
            "Supabase backend selected but SUPABASE_URL / SUPABASE_KEY are not set.\n"
            "  export SUPABASE_URL=https://xxxx.supabase.co\n"
            "  export SUPABASE_KEY=<anon or service key>"
        )
    client = create_client(settings.supabase_url, settings.supabase_key)
    logger.info("Supabase client initialised -> %s", settings.supabase_url)
    return client


def make_store(settings: Settings, client: Client | None = None):
    if settings.member_backend == "supabase":
        return SupabaseMemberStore(client or make_supabase_client(settings))
    if settings.member_backend != "sqlite":
        raise ValueError(f"Unknown member backend: {settings.member_backend!r}")
    db.configure(settings.db_file)
    return SqliteMemberStore()
