import pytest

from circulation.errors import StorageError, ValidationError
from circulation.services.store import SQLiteDataStore


def _book_row(**overrides):
    row = {"title": "Ulysses", "author": "James Joyce", "isbn": "9780199535675",
           "quantity": 2, "available_quantity": 2}
    row.update(overrides)
    return row


def test_insert_assigns_id_and_returns_row(store):
    row = store.insert("books", _book_row())
    assert row["id"]
    assert row["title"] == "Ulysses"
    assert store.get("books", row["id"]) == row


def test_select_filters_and_order(store):
    store.insert("books", _book_row(title="B", available_quantity=0))
    store.insert("books", _book_row(title="C"))
    store.insert("books", _book_row(title="A"))

    titles = [r["title"] for r in store.select("books", order="title")]
    assert titles == ["A", "B", "C"]
    available = [r["title"] for r in store.select("books", {"available_quantity": ("gt", 0)}, order="title", descending=True)]
    assert available == ["C", "A"]


def test_null_filter(store):
    member = store.insert("members", {"name": "Ada", "email": "ada@example.com"})
    book = store.insert("books", _book_row())
    store.insert("issuances", {"member_id": member["id"], "book_id": book["id"],
                               "issue_date": "2026-03-10T09:30:00+00:00", "due_date": "2026-03-24"})
    assert len(store.select("issuances", {"return_date": None})) == 1
    assert store.select("issuances", {"return_date": ("neq", "x")}) == []


def test_conditional_update_only_applies_when_expected_matches(store):
    row = store.insert("books", _book_row())

    assert store.update("books", row["id"], {"available_quantity": 1}, expected={"available_quantity": 5}) is None
    assert store.get("books", row["id"])["available_quantity"] == 2

    updated = store.update("books", row["id"], {"available_quantity": 1}, expected={"available_quantity": 2})
    assert updated["available_quantity"] == 1


def test_update_missing_row_returns_none(store):
    assert store.update("members", "missing", {"name": "X"}) is None


def test_constraint_violation_is_storage_error(store):
    row = store.insert("books", _book_row())
    with pytest.raises(StorageError):
        store.update("books", row["id"], {"available_quantity": -1})


def test_unknown_table_and_column_are_rejected(store):
    with pytest.raises(ValidationError):
        store.select("loans")
    with pytest.raises(ValidationError):
        store.select("books", {"title; DROP TABLE books": "x"})
    with pytest.raises(ValidationError):
        store.select("books", order="nope")


def test_issuances_are_joined_with_member_and_book(store):
    member = store.insert("members", {"name": "Ada", "email": "ada@example.com"})
    book = store.insert("books", _book_row())
    store.insert("issuances", {"member_id": member["id"], "book_id": book["id"],
                               "issue_date": "2026-03-10T09:30:00+00:00", "due_date": "2026-03-24"})

    rows = store.select_issuances()
    assert rows[0]["member"]["name"] == "Ada"
    assert rows[0]["book"]["title"] == "Ulysses"


def test_data_persists_across_instances(tmp_path):
    db_file = str(tmp_path / "persist.db")
    first = SQLiteDataStore(db_file)
    first.insert("members", {"name": "Ada", "email": "ada@example.com"})

    second = SQLiteDataStore(db_file)
    assert [m["name"] for m in second.select("members")] == ["Ada"]


def test_in_filter(store):
    first = store.insert("books", _book_row(title="A"))
    store.insert("books", _book_row(title="B"))
    third = store.insert("books", _book_row(title="C"))

    rows = store.select("books", {"id": ("in", [first["id"], third["id"]])}, order="title")
    assert [r["title"] for r in rows] == ["A", "C"]
    assert store.select("books", {"id": ("in", [])}) == []


def test_issuance_join_loads_only_referenced_rows(store, monkeypatch):
    member = store.insert("members", {"name": "Ada", "email": "ada@example.com"})
    store.insert("members", {"name": "Grace", "email": "grace@example.com"})
    book = store.insert("books", _book_row())
    store.insert("books", _book_row(title="Dubliners"))
    store.insert("issuances", {"member_id": member["id"], "book_id": book["id"],
                               "issue_date": "2026-03-10T09:30:00+00:00", "due_date": "2026-03-24"})

    loaded = {}
    original_select = store.select

    def recording_select(table, filters=None, order=None, descending=False):
        rows = original_select(table, filters, order, descending)
        loaded.setdefault(table, []).extend(r["id"] for r in rows)
        return rows

    monkeypatch.setattr(store, "select", recording_select)
    rows = store.select_issuances()

    assert rows[0]["member"]["name"] == "Ada"
    assert loaded["members"] == [member["id"]]
    assert loaded["books"] == [book["id"]]
