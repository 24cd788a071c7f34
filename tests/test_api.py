import pytest
from fastapi.testclient import TestClient

from database import MemoryStore
from main import app, get_tracker, make_token, parse_token
from notifications import EmailSender
from tracker import InventoryTracker


class QuietSender(EmailSender):
    def __init__(self):
        self.sent = []

    def send(self, event):
        self.sent.append(event)


@pytest.fixture
def tracker():
    return InventoryTracker(MemoryStore(), sender=QuietSender())


@pytest.fixture
def client(tracker):
    app.dependency_overrides[get_tracker] = lambda: tracker
    yield TestClient(app)
    app.dependency_overrides.clear()


def login(client, identifier, password):
    res = client.post("/auth/login", data={"username": identifier, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, "admin", "password")


@pytest.fixture
def member_headers(client, admin_headers):
    res = client.post(
        "/auth/register",
        json={"username": "juan", "fullName": "Juan Santos", "email": "juan@school.ph", "password": "secret1"},
    )
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "PENDING"
    res = client.post(f"/users/{res.json()['id']}/approve", headers=admin_headers)
    assert res.status_code == 200
    return login(client, "juan", "secret1")


def test_token_roundtrip():
    assert parse_token(make_token("user_1")) == "user_1"
    assert parse_token("user_1|0|bad") is None
    assert parse_token("garbage") is None


def test_root_and_storage_check(client):
    assert client.get("/").json()["status"] == "ok"
    body = client.get("/test").json()
    assert body["storage"] == "MemoryStore"
    assert body["storage_status"] == "✅ Readable"


def test_login_failures(client):
    res = client.post("/auth/login", data={"username": "admin", "password": "wrong"})
    assert res.status_code == 401
    client.post(
        "/auth/register",
        json={"username": "ana", "fullName": "Ana Reyes", "email": "ana@school.ph", "password": "secret1"},
    )
    res = client.post("/auth/login", data={"username": "ana", "password": "secret1"})
    assert res.status_code == 403
    assert "pending" in res.json()["detail"]


def test_register_duplicate_and_invalid(client):
    res = client.post(
        "/auth/register",
        json={"username": "Admin", "fullName": "Someone", "email": "x@school.ph", "password": "secret1"},
    )
    assert res.status_code == 409
    assert res.json()["detail"] == "This username is already taken."
    res = client.post(
        "/auth/register",
        json={"username": "kid", "fullName": "Kid", "email": "kid@school.ph", "password": "123"},
    )
    assert res.status_code == 422


def test_me_hides_password(client, admin_headers):
    body = client.get("/me", headers=admin_headers).json()
    assert body["username"] == "admin"
    assert body["isAdmin"] is True
    assert "password" not in body


def test_requires_token(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_borrow_flow_over_http(client, admin_headers, member_headers):
    item = client.post(
        "/items", json={"name": "Bunsen Burner", "category": "Chemistry", "total_quantity": 10}, headers=admin_headers
    ).json()
    assert item["availableQuantity"] == 10

    log = client.post("/borrows", json={"item_id": item["id"], "quantity": 4}, headers=member_headers).json()
    assert log["status"] == "PENDING"

    res = client.post(f"/borrows/{log['id']}/approve", headers=member_headers)
    assert res.status_code == 403

    res = client.post(f"/borrows/{log['id']}/approve", headers=admin_headers)
    assert res.json()["status"] == "APPROVED"
    res = client.post(f"/borrows/{log['id']}/approve", headers=admin_headers)
    assert res.status_code == 409

    res = client.post(f"/borrows/{log['id']}/request-return", headers=member_headers)
    assert res.json()["returnRequested"] is True

    res = client.post(f"/borrows/{log['id']}/return", json={"admin_notes": "ok"}, headers=admin_headers)
    assert res.json()["action"] == "RETURN"
    assert res.json()["relatedLogId"] == log["id"]

    items = client.get("/items", params={"q": "bunsen"}).json()["items"]
    assert items[0]["availableQuantity"] == 10

    mine = client.get("/borrows", headers=member_headers).json()["items"]
    assert [l["status"] for l in mine] == ["RETURNED"]


def test_insufficient_stock_is_409(client, admin_headers, member_headers):
    res = client.post("/borrows", json={"item_id": "item_1622548800002", "quantity": 4}, headers=member_headers)
    assert res.status_code == 409
    assert "Not enough Microscope" in res.json()["detail"]


def test_member_cannot_borrow_for_someone_else(client, admin_headers, member_headers):
    admin_id = client.get("/me", headers=admin_headers).json()["id"]
    res = client.post(
        "/borrows", json={"item_id": "item_1622548800001", "quantity": 1, "user_id": admin_id}, headers=member_headers
    )
    assert res.status_code == 403


def test_deny_borrow_needs_reason(client, admin_headers, member_headers):
    log = client.post("/borrows", json={"item_id": "item_1622548800001", "quantity": 1}, headers=member_headers).json()
    res = client.post(f"/borrows/{log['id']}/deny", json={"reason": " "}, headers=admin_headers)
    assert res.status_code == 400
    res = client.post(f"/borrows/{log['id']}/deny", json={"reason": "Maintenance"}, headers=admin_headers)
    assert res.json()["adminNotes"] == "Maintenance"


def test_item_delete_conflict_and_edit_validation(client, admin_headers):
    res = client.delete("/items/item_1622548800002", headers=admin_headers)
    assert res.status_code == 409
    res = client.put(
        "/items/item_1622548800002",
        json={"name": "Microscope", "category": "Biology", "total_quantity": 1},
        headers=admin_headers,
    )
    assert res.status_code == 400
    res = client.delete("/items/item_1622548800001", headers=admin_headers)
    assert res.json() == {"deleted": True}


def test_import_skips_bad_rows(client, admin_headers):
    res = client.post(
        "/items/import",
        json=[
            {"name": "Pipette", "category": "Chemistry", "totalQuantity": 12},
            {"name": "", "category": "Chemistry", "totalQuantity": 3},
        ],
        headers=admin_headers,
    )
    assert res.json() == {"imported": 1, "skipped": 1}


def test_delete_last_admin_is_409(client, admin_headers):
    admin_id = client.get("/me", headers=admin_headers).json()["id"]
    res = client.delete(f"/users/{admin_id}", headers=admin_headers)
    assert res.status_code == 409


def test_user_review_is_one_shot(client, admin_headers):
    uid = client.post(
        "/auth/register",
        json={"username": "ana", "fullName": "Ana Reyes", "email": "ana@school.ph", "password": "secret1"},
    ).json()["id"]
    pending = client.get("/users", params={"status": "pending"}, headers=admin_headers).json()["items"]
    assert [u["id"] for u in pending] == [uid]
    assert client.post(f"/users/{uid}/deny", headers=admin_headers).json()["status"] == "DENIED"
    assert client.post(f"/users/{uid}/approve", headers=admin_headers).status_code == 409


def test_suggestion_flow(client, admin_headers, member_headers):
    sug = client.post(
        "/suggestions", json={"type": "ITEM", "title": "Thermometer", "description": "digital"}, headers=member_headers
    ).json()
    res = client.post(f"/suggestions/{sug['id']}/approve", json={}, headers=admin_headers)
    assert res.status_code == 400
    res = client.post(
        f"/suggestions/{sug['id']}/approve", json={"category": "Chemistry", "total_quantity": 8}, headers=admin_headers
    )
    body = res.json()
    assert body["suggestion"]["status"] == "APPROVED"
    assert body["item"]["name"] == "Thermometer"
    assert body["item"]["availableQuantity"] == 8

    feature = client.post("/suggestions", json={"type": "FEATURE", "title": "Dark mode"}, headers=member_headers).json()
    res = client.post(f"/suggestions/{feature['id']}/deny", json={"reason": "Not now"}, headers=admin_headers)
    assert res.json()["comment"]["text"] == "Not now"
    comments = client.get(f"/suggestions/{feature['id']}/comments", headers=member_headers).json()["items"]
    assert [c["text"] for c in comments] == ["Not now"]

    res = client.post(f"/suggestions/{feature['id']}/comments", json={"text": "ok, thanks"}, headers=member_headers)
    assert res.status_code == 200


def test_notifications_and_reports(client, admin_headers, member_headers):
    client.post("/borrows", json={"item_id": "item_1622548800001", "quantity": 1}, headers=member_headers)
    unread = client.get("/notifications", params={"unread": True}, headers=admin_headers).json()["items"]
    types = [n["type"] for n in unread]
    assert types[0] == "new_borrow_request"
    assert "new_user" in types

    res = client.post("/notifications/read", json={"ids": [n["id"] for n in unread]}, headers=admin_headers)
    assert res.json() == {"updated": len(unread)}
    assert client.get("/notifications", params={"unread": True}, headers=admin_headers).json()["items"] == []

    stats = client.get("/reports/stats", headers=admin_headers).json()
    assert stats["pending_requests"] == 1
    assert stats["borrowed_units"] == 4
    assert client.get("/reports/stats", headers=member_headers).status_code == 403

    summary = client.get("/reports/summary", headers=admin_headers).json()["report"]
    assert summary.startswith("Error: no report generator")


def test_blank_suggestion_title_is_400(client, admin_headers):
    res = client.post("/suggestions", json={"type": "FEATURE", "title": ""}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Title is required."
