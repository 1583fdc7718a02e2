from __future__ import annotations

import asyncio
import threading
from datetime import date, timedelta

import pytest

import db
from errors import CameraPermissionDenied
from models import Member

TODAY = date(2026, 3, 15)


def make_member(member_id: str = "u1", days_left: int = 10, name: str = "Jane Doe") -> Member:
    return Member(
        id=member_id,
        full_name=name,
        start_date=TODAY - timedelta(days=30),
        end_date=TODAY + timedelta(days=days_left),
    )


class FakeStore:
    def __init__(self, members=None, error: Exception | None = None, gate: threading.Event | None = None):
        self.members = list(members or [])
        self.error = error
        self.gate = gate
        self.calls = 0

    def fetch_all_members(self):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return list(self.members)


class FakeNotifier:
    def __init__(self):
        self.notices = []

    def notify(self, kind, message):
        self.notices.append((kind, message))

    @property
    def kinds(self):
        return [k for k, _ in self.notices]


class FakeCamera:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.acquired = 0
        self.released = []

    def request_camera_access(self):
        if self.error is not None:
            raise self.error
        self.acquired += 1
        return f"handle-{self.acquired}"

    def release_camera_access(self, handle):
        self.released.append(handle)


class PickLast:
    def choice(self, seq):
        return seq[-1]


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def denied_camera():
    return FakeCamera(error=CameraPermissionDenied("blocked"))


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "test.db")
    db.init_db("not-a-real-hash")
    return tmp_path / "test.db"
