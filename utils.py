"""
utils.py
Validation, dates, membership classification, tables, demo data.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
import pandas as pd

from models import Member, MembershipStatus

MEMBER_COLUMNS = ["id", "full_name", "start_date", "end_date", "status", "portrait_url"]


def parse_iso(d: str) -> date:
    return date.fromisoformat(d[:10])


def _as_date(value: date | datetime) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    return value


def days_remaining(end_date: date | datetime, today: date | datetime) -> int:
    """
    Whole days from `today` until `end_date`, time-of-day ignored.
    """
    delta = _as_date(end_date) - _as_date(today)
    return math.ceil(delta / timedelta(days=1))


def classify_membership(end_date: date | datetime, today: date | datetime) -> MembershipStatus:
    days = days_remaining(end_date, today)
    if days < 0:
        return MembershipStatus.EXPIRED
    if days <= 1:
        return MembershipStatus.EXPIRING
    return MembershipStatus.CURRENT


def status_message(end_date: date, today: date) -> str:
    days = days_remaining(end_date, today)
    status = classify_membership(end_date, today)
    if status is MembershipStatus.EXPIRED:
        return "Membership expired."
    if status is MembershipStatus.EXPIRING:
        return "Membership expires tomorrow." if days == 1 else "Membership expires today."
    return f"Membership active. Expires in {days} days."


def validate_member_inputs(full_name: str, start_date, end_date) -> list[str]:
    errors: list[str] = []
    if len(full_name.strip()) < 2:
        errors.append("Full name must be at least 2 characters.")
    try:
        sd = start_date if isinstance(start_date, date) else parse_iso(start_date)
        ed = end_date if isinstance(end_date, date) else parse_iso(end_date)
        if ed <= sd:
            errors.append("End date must be after start date.")
    except (TypeError, ValueError):
        errors.append("Start/end dates must be valid ISO dates (YYYY-MM-DD).")
    return errors


def members_to_dataframe(members: list[Member], today: date | None = None) -> pd.DataFrame:
    today = today or date.today()
    rows = [
        {
            "id": m.id,
            "full_name": m.full_name,
            "start_date": m.start_date.isoformat(),
            "end_date": m.end_date.isoformat(),
            "status": classify_membership(m.end_date, today).value,
            "portrait_url": m.portrait_url,
        }
        for m in members
    ]
    if not rows:
        return pd.DataFrame(columns=MEMBER_COLUMNS)
    return pd.DataFrame(rows, columns=MEMBER_COLUMNS)


def insert_sample_data(store) -> list[Member]:
    """
    Insert 3 demo members covering every membership status
    (safe to run multiple times: adds new rows each time).
    """
    today = date.today()
    samples = [
        # current, expires in ~10 days
        ("Jane Doe", today - timedelta(days=20), today + timedelta(days=10)),
        # expiring tomorrow
        ("Carlos Ruiz", today - timedelta(days=29), today + timedelta(days=1)),
        # expired
        ("Omar Samy", today - timedelta(days=60), today - timedelta(days=2)),
    ]
    return [store.create_member(name, start, end) for name, start, end in samples]
