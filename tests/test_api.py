from unittest import mock

import pytest

from hostel_ledger.errors import DependencyError


def _room(client, number, capacity=2, purpose="Regular"):
    return client.post("/rooms", json={"number": number, "capacity": capacity, "purpose": purpose})


def _book(client, book_id="B1", copies=1, price=450):
    return client.post(
        "/books",
        json={"title": "Dune", "author": "Frank Herbert", "bookId": book_id, "price": price, "totalCopies": copies},
    )


def test_room_assignment_flow(client):
    r = _room(client, 101, capacity=2)
    assert r.status_code == 201
    assert r.get_json()["data"]["occupantIds"] == []

    r = client.post("/rooms/number/101/assign/S1")
    assert r.get_json() == {"success": True, "data": mock.ANY}
    assert r.get_json()["data"]["occupancy"] == 1
    client.post("/rooms/number/101/assign/S2")

    r = client.post("/rooms/number/101/assign/S3")
    assert r.status_code == 409
    body = r.get_json()
    assert body["success"] is False
    assert body["error"] == "RoomFull"
    assert "full" in body["message"]

    r = client.delete("/rooms/number/101/remove/S2")
    assert r.status_code == 200
    assert r.get_json()["message"] == "Student S2 removed from room 101"

    r = client.delete("/rooms/number/101/remove/S2")
    assert r.status_code == 409
    assert r.get_json()["error"] == "NotAssigned"

    r = client.get("/rooms/student/S1")
    assert r.get_json()["data"]["room"]["number"] == 101


def test_room_errors(client):
    _room(client, 1)
    assert _room(client, 1).status_code == 400
    assert _room(client, 2, capacity=0).status_code == 400
    assert _room(client, 3, purpose="Ballroom").status_code == 400
    assert client.post("/rooms/number/99/assign/S1").status_code == 404
    assert client.get("/rooms/number/99").get_json()["error"] == "RoomNotFound"


def test_room_number_defaults_to_next_gap(client):
    _room(client, 1)
    _room(client, 3)
    assert client.get("/rooms/next-number").get_json()["data"] == {"number": 2}
    r = client.post("/rooms", json={"capacity": 4})
    assert r.get_json()["data"]["number"] == 2


def test_delete_room(client):
    _room(client, 1)
    client.post("/rooms/number/1/assign/S1")

    r = client.delete("/rooms/number/1")
    assert r.status_code == 409
    assert r.get_json()["error"] == "RoomNotEmpty"

    r = client.delete("/rooms/number/1?force=true")
    assert r.get_json() == {"success": True, "message": "Room 1 deleted"}
    assert client.get("/rooms").get_json()["data"] == []


def test_update_room(client):
    _room(client, 1, capacity=2)
    r = client.put("/rooms/number/1", json={"capacity": 5, "purpose": "Common Room"})
    data = r.get_json()["data"]
    assert (data["capacity"], data["purpose"], data["specialPurpose"]) == (5, "Common Room", True)


def test_circulation_flow(client):
    assert _book(client).status_code == 201

    r = client.post("/books/B1/issue/X", json={"issueDate": "2024-01-01"})
    assert r.status_code == 201
    loan = r.get_json()["data"]
    assert loan["dueDate"] == "2024-01-16"
    assert loan["status"] == "overdue"  # long past due by now

    r = client.post("/books/B1/issue/Y", json={"issueDate": "2024-01-01"})
    assert r.status_code == 409
    assert r.get_json()["error"] == "NoCopiesAvailable"

    overdue = client.get("/books/overdue").get_json()["data"]
    assert [l["loanId"] for l in overdue] == [loan["loanId"]]
    assert overdue[0]["fine"] > 0

    r = client.put(f"/books/return/{loan['loanId']}")
    assert r.get_json()["data"]["status"] == "returned"
    assert client.get("/books/B1").get_json()["data"]["availableCopies"] == 1

    r = client.put(f"/books/return/{loan['loanId']}")
    assert r.status_code == 409
    assert r.get_json()["error"] == "LoanNotActive"
    assert client.get("/books/overdue").get_json()["data"] == []


def test_lost_and_recovered(client):
    _book(client, copies=2)
    loan = client.post("/books/B1/issue/X", json={}).get_json()["data"]
    assert loan["status"] == "issued"

    r = client.put(f"/books/mark-lost/{loan['loanId']}")
    data = r.get_json()["data"]
    assert data["status"] == "lost"
    assert data["replacementCharge"] == 450.0
    book = client.get("/books/B1").get_json()["data"]
    assert (book["totalCopies"], book["availableCopies"]) == (1, 1)

    r = client.put(f"/books/recover/{loan['loanId']}")
    assert r.get_json()["data"]["status"] == "recovered"
    book = client.get("/books/B1").get_json()["data"]
    assert (book["totalCopies"], book["availableCopies"]) == (2, 2)

    r = client.put(f"/books/recover/{loan['loanId']}")
    assert r.status_code == 409
    assert r.get_json()["error"] == "LoanNotLost"


def test_unknown_loan_is_404(client):
    for method, path in [
        ("put", "/books/return/42"),
        ("put", "/books/mark-lost/42"),
        ("put", "/books/recover/42"),
        ("post", "/books/remind/42"),
    ]:
        r = getattr(client, method)(path)
        assert r.status_code == 404
        assert r.get_json()["success"] is False


def test_book_validation(client):
    _book(client)
    assert _book(client).get_json()["error"] == "DuplicateBookId"
    r = client.post("/books", json={"title": "", "bookId": "B2"})
    assert r.status_code == 400
    assert _book(client, "B3", copies=0).status_code == 400
    r = client.post("/books/B1/issue/X", json={"issueDate": "yesterday"})
    assert r.status_code == 400


def test_loan_limit_over_http(client):
    for i in range(4):
        _book(client, f"B{i}")
    for i in range(3):
        assert client.post(f"/books/B{i}/issue/Z", json={}).status_code == 201
    r = client.post("/books/B3/issue/Z", json={})
    assert r.status_code == 409
    assert r.get_json()["error"] == "LoanLimitExceeded"
    assert len(client.get("/books/student/Z").get_json()["data"]) == 3
    assert len(client.get("/books/issued").get_json()["data"]) == 3


def test_update_and_delete_book(client):
    _book(client, copies=2)
    r = client.put("/books/B1", json={"totalCopies": 4, "price": 500})
    data = r.get_json()["data"]
    assert (data["totalCopies"], data["availableCopies"], data["price"]) == (4, 4, 500.0)
    assert data["title"] == "Dune"

    assert client.delete("/books/B1").get_json()["success"] is True
    assert client.get("/books/B1").status_code == 404


def test_book_author_can_be_cleared(client):
    _book(client)
    r = client.put("/books/B1", json={"author": ""})
    assert r.get_json()["data"]["author"] == ""

    r = client.put("/books/B1", json={"title": "Dune Messiah"})
    assert r.get_json()["data"]["author"] == ""


def test_fractional_numbers_are_rejected(client):
    assert _room(client, 5, capacity=2.9).status_code == 400
    assert _book(client, copies=1.5).status_code == 400
    assert client.get("/rooms").get_json()["data"] == []
    assert client.get("/books").get_json()["data"] == []

    _room(client, 5, capacity=2)
    _book(client, copies=2)
    assert client.put("/rooms/number/5", json={"capacity": 3.5}).status_code == 400
    assert client.put("/books/B1", json={"totalCopies": 2.5}).status_code == 400
    assert client.get("/rooms/number/5").get_json()["data"]["capacity"] == 2
    assert client.get("/books/B1").get_json()["data"]["totalCopies"] == 2

    r = client.post("/rooms", json={"number": 6, "capacity": 3.0})
    assert r.status_code == 201
    assert r.get_json()["data"]["capacity"] == 3


def test_search_books(client):
    _book(client)
    assert len(client.get("/books?q=herbert").get_json()["data"]) == 1
    assert client.get("/books?q=tolstoy").get_json()["data"] == []


def test_reminder_is_best_effort(app, client):
    _book(client)
    loan = client.post("/books/B1/issue/X", json={"issueDate": "2024-01-01"}).get_json()["data"]

    hook = mock.Mock()
    hook.send_reminder.side_effect = DependencyError("gateway down")
    app.extensions["notification_hook"] = hook

    r = client.post(f"/books/remind/{loan['loanId']}")
    assert r.status_code == 200
    body = r.get_json()
    assert body["message"] == "Reminder recorded, delivery not confirmed"
    assert body["data"]["reminderSentAt"] is not None


def test_feedback_flow(client):
    r = client.post("/feedback", json={"studentId": "S1", "category": "food", "rating": 5, "comment": "Great"})
    assert r.status_code == 201
    item = r.get_json()["data"]
    assert item["status"] == "pending"

    r = client.post(
        f"/feedback/{item['feedbackId']}/respond",
        json={"response": "Thanks!", "priority": "high", "isResolved": False},
    )
    data = r.get_json()["data"]
    assert (data["status"], data["priority"]) == ("responded", "high")

    r = client.patch(f"/feedback/{item['feedbackId']}/resolve", json={"isResolved": True})
    data = r.get_json()["data"]
    assert data["status"] == "resolved"
    assert data["resolvedAt"] is not None

    r = client.patch(f"/feedback/{item['feedbackId']}/resolve", json={"isResolved": False})
    assert r.get_json()["data"]["status"] == "responded"

    r = client.patch(f"/feedback/{item['feedbackId']}/resolve")
    assert r.get_json()["data"]["status"] == "resolved"


@pytest.mark.parametrize(
    "body",
    [
        {"studentId": "S1", "category": "food", "rating": 6, "comment": "x"},
        {"studentId": "S1", "category": "food", "rating": 3, "comment": ""},
        {"studentId": "S1", "category": "parking", "rating": 3, "comment": "x"},
        {"studentId": "S1", "category": "food", "comment": "x"},
        {"studentId": "S1", "category": "food", "rating": 4.7, "comment": "x"},
        {"studentId": "S1", "category": "food", "rating": True, "comment": "x"},
    ],
)
def test_feedback_validation(client, body):
    r = client.post("/feedback", json=body)
    assert r.status_code == 400
    assert r.get_json()["success"] is False


def test_feedback_not_found(client):
    assert client.post("/feedback/5/respond", json={"response": "hi"}).status_code == 404
    assert client.patch("/feedback/5/resolve", json={"isResolved": True}).status_code == 404


def test_feedback_queries(client):
    client.post("/feedback", json={"studentId": "S1", "category": "food", "rating": 2, "comment": "Cold rice"})
    client.post(
        "/feedback",
        json={"studentId": "S2", "category": "security", "rating": 4, "comment": "Fine", "anonymous": True},
    )

    items = client.get("/feedback?category=security").get_json()["data"]
    assert len(items) == 1
    assert items[0]["studentId"] is None

    assert len(client.get("/feedback?status=pending&search=rice").get_json()["data"]) == 1
    assert client.get("/feedback/student/S2").get_json()["data"][0]["studentId"] == "S2"

    stats = client.get("/feedback/stats").get_json()["data"]
    assert stats["total"] == 2
    assert stats["averageRating"] == 3.0
