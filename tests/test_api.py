from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import api as api_module
from circulation.errors import StorageError
from config import settings


@pytest.fixture
def client(lib, tmp_path, monkeypatch):
    # Her test kendi Library örneğini ve günlük dizinini kullanır
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    api_module.app.dependency_overrides[api_module.get_library] = lambda: lib
    try:
        yield TestClient(api_module.app)
    finally:
        api_module.app.dependency_overrides.clear()


def _create_member(client, name="Ada Lovelace", email="ada@example.com"):
    response = client.post("/members", json={"name": name, "email": email})
    assert response.status_code == 201
    return response.json()


def _create_book(client, quantity=1):
    response = client.post("/books", json={"title": "Ulysses", "author": "James Joyce",
                                           "isbn": "9780199535675", "quantity": quantity})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_member_crud(client):
    member = _create_member(client)
    assert client.get("/members").json() == [member]

    response = client.put(f"/members/{member['id']}", json={"phone": "+90 212 555 0000"})
    assert response.status_code == 200
    assert response.json()["phone"] == "+90 212 555 0000"

    assert client.get("/members/missing").status_code == 404


def test_invalid_member_is_400(client):
    response = client.post("/members", json={"name": "Ada", "email": "nope"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid"


def test_book_create_and_quantity_edit(client):
    book = _create_book(client, quantity=2)
    assert book["available_quantity"] == 2

    response = client.put(f"/books/{book['id']}", json={"quantity": 4})
    assert response.status_code == 200
    assert response.json()["available_quantity"] == 4


def test_issue_and_return_flow(client, clock):
    member = _create_member(client)
    book = _create_book(client, quantity=1)

    response = client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"]})
    assert response.status_code == 201
    issuance = response.json()
    assert issuance["status"] == "Borrowed"
    assert issuance["due_date"] == (clock().date() + timedelta(days=14)).isoformat()
    assert issuance["member"] == {"name": "Ada Lovelace", "email": "ada@example.com"}

    # Stokta kopya yok: form adayları boş, yeni ödünç 409
    assert client.get("/books", params={"available": "true"}).json() == []
    response = client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"]})
    assert response.status_code == 409
    assert response.json()["code"] == "out_of_stock"

    pending = client.get("/dashboard/pending-returns").json()
    assert [p["id"] for p in pending] == [issuance["id"]]

    response = client.post(f"/issuances/{issuance['id']}/return")
    assert response.status_code == 200
    assert response.json()["status"] == "Returned"
    assert client.get(f"/books/{book['id']}").json()["available_quantity"] == 1

    response = client.post(f"/issuances/{issuance['id']}/return")
    assert response.status_code == 409
    assert response.json()["code"] == "already_returned"


def test_issue_with_past_due_date_is_400(client, clock):
    member = _create_member(client)
    book = _create_book(client)
    yesterday = (clock().date() - timedelta(days=1)).isoformat()
    response = client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"],
                                               "due_date": yesterday})
    assert response.status_code == 400
    assert client.get("/issuances").json() == []


def test_quantity_below_borrowed_is_409(client):
    member = _create_member(client)
    book = _create_book(client, quantity=2)
    client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"]})
    client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"]})

    response = client.put(f"/books/{book['id']}", json={"quantity": 1})
    assert response.status_code == 409
    assert response.json()["code"] == "insufficient_stock"
    assert client.get(f"/books/{book['id']}").json()["quantity"] == 2


def test_partial_write_is_reported(client, lib, monkeypatch):
    member = _create_member(client)
    book = _create_book(client)
    issuance = client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"]}).json()

    original_update = lib.store.update

    def failing_book_update(table, row_id, patch, expected=None):
        if table == "books":
            raise StorageError("timeout")
        return original_update(table, row_id, patch, expected)

    monkeypatch.setattr(lib.store, "update", failing_book_update)
    response = client.post(f"/issuances/{issuance['id']}/return")
    assert response.status_code == 503
    body = response.json()
    assert body["needs_reconciliation"] is True
    assert body["book_id"] == book["id"]
    monkeypatch.setattr(lib.store, "update", original_update)

    audit = client.get("/admin/audit").json()
    assert audit[0]["expected_available"] == 1
    response = client.post(f"/admin/reconcile/{book['id']}")
    assert response.json()["available_quantity"] == 1
    assert client.get("/admin/audit").json() == []


def test_stats(client):
    member = _create_member(client)
    book = _create_book(client, quantity=3)
    client.post("/issuances", json={"member_id": member["id"], "book_id": book["id"]})

    stats = client.get("/stats").json()
    assert stats["total_copies"] == 3
    assert stats["copies_on_loan"] == 1
    assert stats["overdue_issuances"] == 0


def test_root_and_log_relay(client, tmp_path):
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "Server is running!"

    response = client.post("/log", json={"level": "warn", "message": "Button Clicked: Add Book"})
    assert response.status_code == 200
    assert response.json() == {"message": "Log recorded"}

    server_log = (tmp_path / "logs" / "server.log").read_text(encoding="utf-8")
    assert "Root API accessed" in server_log
    assert "[WARN]: Button Clicked: Add Book" in server_log


def test_log_relay_requires_level_and_message(client):
    response = client.post("/log", json={"level": "info"})
    assert response.status_code == 400
    assert response.json() == {"error": "Level and message are required"}

    assert client.post("/log", json={"level": "debug", "message": "x"}).status_code == 400


def test_library_is_created_at_startup_and_closed_at_shutdown(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "data_store", "sqlite")
    monkeypatch.setattr(settings, "database_file", str(tmp_path / "startup.db"))
    closed = []
    monkeypatch.setattr(api_module.Library, "close", lambda self: closed.append(self))

    with TestClient(api_module.app) as started:
        library = api_module.app.state.library
        assert started.post("/members", json={"name": "Ada", "email": "ada@example.com"}).status_code == 201
        assert api_module.app.state.library is library
        assert [m["name"] for m in started.get("/members").json()] == ["Ada"]

    assert closed == [library]
    assert api_module.app.state.library is None


def test_requests_without_startup_are_503(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "log_dir", str(tmp_path / "logs"))
    response = TestClient(api_module.app).get("/members")
    assert response.status_code == 503
