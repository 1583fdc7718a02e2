"""
models.py
Lightweight domain types (members, scan and membership states).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from enum import Enum


class ScanStatus(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    SUCCESS = "success"
    ERROR = "error"
    VERIFIED = "verified"


class MembershipStatus(str, Enum):
    CURRENT = "current"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class NoticeKind(str, Enum):
    SCAN_SUCCESS = "scan_success"
    FETCH_FAILURE = "fetch_failure"
    EMPTY_SET = "empty_set"
    CAMERA_DENIED = "camera_denied"
    CAMERA_UNAVAILABLE = "camera_unavailable"


@dataclass(frozen=True)
class Member:
    id: str
    full_name: str
    start_date: date
    end_date: date
    portrait_url: str | None = None
    created_at: str | None = None
