from __future__ import annotations

from fastapi.testclient import TestClient

from backend.app.db.models import Role


def test_balance_and_history(client: TestClient, make_user, login) -> None:
    user = make_user(balance=120, allocation=80)
    headers = login(user)

    balance = client.get("/points/balance", headers=headers).json()
    assert balance == {"balance": 120, "monthly_allocation": 80}

    history = client.get("/points/history", params={"limit": 5}, headers=headers).json()
    assert len(history) == 1
    assert history[0]["amount"] == 120
    assert history[0]["type"] == "EARNED"


def test_transfer_between_employees(client: TestClient, make_user, login) -> None:
    sender = make_user(balance=500)
    recipient = make_user(balance=300)
    headers = login(sender)

    resp = client.post(
        "/points/transfer",
        json={"recipient_id": recipient.id, "amount": 100, "description": "Lunch"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"sender_new_balance": 400, "recipient_new_balance": 400, "amount": 100}

    resp = client.post(
        "/points/transfer",
        json={"recipient_id": sender.id, "amount": 50, "description": "Me"},
        headers=headers,
    )
    assert resp.status_code == 400

    resp = client.post(
        "/points/transfer",
        json={"recipient_id": recipient.id, "amount": 1000, "description": "Too much"},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Insufficient points balance"


def test_transfer_rejects_non_positive_amount(client: TestClient, make_user, login) -> None:
    sender = make_user(balance=50)
    recipient = make_user()
    resp = client.post(
        "/points/transfer",
        json={"recipient_id": recipient.id, "amount": 0, "description": "Zero"},
        headers=login(sender),
    )
    assert resp.status_code == 422


def test_admin_only_operations_are_forbidden_for_employees(client: TestClient, make_user, login) -> None:
    employee = make_user()
    headers = login(employee)

    assert client.post("/points/allocate", headers=headers).status_code == 403
    assert client.get("/points/statistics", headers=headers).status_code == 403
    resp = client.put(f"/points/users/{employee.id}/allocation", json={"monthly_allocation": 500}, headers=headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "UNAUTHORIZED"
    resp = client.post(f"/points/users/{employee.id}/add", json={"amount": 500, "description": "Free"}, headers=headers)
    assert resp.status_code == 403
    assert client.get("/points/balance", headers=headers).json()["balance"] == 0


def test_manager_can_read_statistics_but_not_allocate(client: TestClient, make_user, login) -> None:
    headers = login(make_user(role=Role.MANAGER, balance=10))

    stats = client.get("/points/statistics", headers=headers)
    assert stats.status_code == 200
    assert stats.json()["total_points_in_system"] == 10
    assert client.post("/points/allocate", headers=headers).status_code == 403


def test_admin_grants_allocates_and_updates_allocation(client: TestClient, make_user, login) -> None:
    admin = make_user(role=Role.ADMIN, allocation=0)
    employee = make_user(allocation=100)
    headers = login(admin)

    resp = client.post(f"/points/users/{employee.id}/add", json={"amount": 25, "description": "Hackathon"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"new_balance": 25, "amount": 25}

    resp = client.put(f"/points/users/{employee.id}/allocation", json={"monthly_allocation": 40}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["monthly_allocation"] == 40

    resp = client.put("/points/users/missing/allocation", json={"monthly_allocation": 40}, headers=headers)
    assert resp.status_code == 404

    resp = client.post("/points/allocate", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["credited"] == 1
    assert body["skipped"] == 1
    assert body["total_points"] == 40

    employee_headers = login(employee)
    assert client.get("/points/balance", headers=employee_headers).json()["balance"] == 65
