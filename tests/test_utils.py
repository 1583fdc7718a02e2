from datetime import date, datetime, timedelta

import pytest

import utils
from conftest import TODAY, make_member
from models import MembershipStatus


@pytest.mark.parametrize("days", [2, 3, 10, 365])
def test_more_than_a_day_left_is_current(days):
    assert utils.classify_membership(TODAY + timedelta(days=days), TODAY) is MembershipStatus.CURRENT


@pytest.mark.parametrize("days", [0, 1])
def test_today_and_tomorrow_are_expiring(days):
    assert utils.classify_membership(TODAY + timedelta(days=days), TODAY) is MembershipStatus.EXPIRING


@pytest.mark.parametrize("days", [1, 2, 30])
def test_past_end_date_is_expired(days):
    assert utils.classify_membership(TODAY - timedelta(days=days), TODAY) is MembershipStatus.EXPIRED


def test_time_of_day_is_ignored():
    end_morning = datetime(2026, 3, 17, 0, 5)
    end_night = datetime(2026, 3, 17, 23, 59)
    today_late = datetime(2026, 3, 15, 23, 0)
    today_early = datetime(2026, 3, 15, 0, 1)
    results = {
        utils.classify_membership(end, today)
        for end in (end_morning, end_night, date(2026, 3, 17))
        for today in (today_late, today_early, date(2026, 3, 15))
    }
    assert results == {MembershipStatus.CURRENT}
    assert utils.days_remaining(end_morning, today_late) == 2


def test_expires_yesterday_late_evening_is_expired():
    assert utils.classify_membership(datetime(2026, 3, 14, 23, 59), datetime(2026, 3, 15, 0, 0)) is MembershipStatus.EXPIRED


@pytest.mark.parametrize(
    "days, message",
    [
        (5, "Membership active. Expires in 5 days."),
        (1, "Membership expires tomorrow."),
        (0, "Membership expires today."),
        (-1, "Membership expired."),
    ],
)
def test_status_message(days, message):
    assert utils.status_message(TODAY + timedelta(days=days), TODAY) == message


def test_validate_member_inputs_ok():
    assert utils.validate_member_inputs("Jane Doe", "2026-01-01", "2026-02-01") == []
    assert utils.validate_member_inputs("Jo", date(2026, 1, 1), date(2026, 1, 2)) == []


def test_validate_member_inputs_errors():
    errors = utils.validate_member_inputs(" J ", date(2026, 2, 1), date(2026, 2, 1))
    assert "Full name must be at least 2 characters." in errors
    assert "End date must be after start date." in errors


def test_validate_member_inputs_bad_dates():
    errors = utils.validate_member_inputs("Jane", "not-a-date", "2026-01-01")
    assert errors == ["Start/end dates must be valid ISO dates (YYYY-MM-DD)."]


def test_members_to_dataframe():
    df = utils.members_to_dataframe([make_member("a", 10), make_member("b", -2)], today=TODAY)
    assert list(df.columns) == utils.MEMBER_COLUMNS
    assert df["status"].tolist() == ["current", "expired"]


def test_members_to_dataframe_empty():
    df = utils.members_to_dataframe([], today=TODAY)
    assert df.empty
    assert list(df.columns) == utils.MEMBER_COLUMNS


def test_insert_sample_data_covers_every_status():
    class Recorder:
        def __init__(self):
            self.created = []

        def create_member(self, name, start, end):
            self.created.append((name, start, end))
            return name

    store = Recorder()
    assert len(utils.insert_sample_data(store)) == 3
    statuses = {utils.classify_membership(end, date.today()) for _, _, end in store.created}
    assert statuses == set(MembershipStatus)
