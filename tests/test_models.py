from datetime import date, datetime, timedelta, timezone

from circulation.models import (
    Book,
    Issuance,
    IssuanceStatus,
    Member,
    default_due_date,
    derive_status,
    parse_timestamp,
)

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


def _issuance(due_date, return_date=None):
    return Issuance(
        id="i-1",
        member_id="m-1",
        book_id="b-1",
        issue_date=NOW - timedelta(days=7),
        due_date=due_date,
        return_date=return_date,
    )


def test_status_overdue_when_due_yesterday():
    assert derive_status(_issuance(NOW.date() - timedelta(days=1)), NOW) == IssuanceStatus.OVERDUE


def test_status_borrowed_when_due_tomorrow():
    assert derive_status(_issuance(NOW.date() + timedelta(days=1)), NOW) == IssuanceStatus.BORROWED


def test_status_returned_regardless_of_due_date():
    returned = NOW - timedelta(days=1)
    assert derive_status(_issuance(NOW.date() - timedelta(days=30), returned), NOW) == IssuanceStatus.RETURNED
    assert derive_status(_issuance(NOW.date() + timedelta(days=30), returned), NOW) == IssuanceStatus.RETURNED


def test_status_accepts_naive_now():
    naive = NOW.replace(tzinfo=None)
    assert derive_status(_issuance(NOW.date() + timedelta(days=2)), naive) == IssuanceStatus.BORROWED


def test_default_due_date_is_fourteen_days_out():
    assert default_due_date(NOW) == date(2026, 3, 24)
    assert default_due_date(date(2026, 1, 1), loan_days=7) == date(2026, 1, 8)


def test_equality_is_by_id():
    a = Book("b-1", "Title", "Author", "123", 2, 2)
    b = Book("b-1", "Other Title", "Other", "456", 5, 1)
    assert a == b
    assert len({a, b}) == 1
    assert Member("m-1", "A", "a@example.com") != Member("m-2", "A", "a@example.com")


def test_issuance_from_joined_row():
    row = {
        "id": "i-9",
        "member_id": "m-1",
        "book_id": "b-1",
        "issue_date": "2026-03-01T10:00:00Z",
        "due_date": "2026-03-15",
        "return_date": None,
        "member": {"id": "m-1", "name": "Ada", "email": "ada@example.com", "phone": None},
        "book": {"id": "b-1", "title": "Ulysses", "author": "James Joyce", "isbn": "1",
                 "quantity": 2, "available_quantity": 1},
    }
    issuance = Issuance.from_dict(row)
    assert issuance.issue_date == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert issuance.due_date == date(2026, 3, 15)
    assert issuance.is_outstanding
    data = issuance.to_dict(NOW)
    assert data["status"] == "Borrowed"
    assert data["member"] == {"name": "Ada", "email": "ada@example.com"}
    assert data["book"] == {"title": "Ulysses", "author": "James Joyce"}


def test_parse_timestamp_treats_naive_as_utc():
    assert parse_timestamp("2026-03-01T10:00:00").tzinfo == timezone.utc
    assert parse_timestamp(None) is None
