"""
Tests for expense endpoints.
"""


def create_expense(client, headers, trip_id, **fields):
    payload = {"trip_id": trip_id, "title": "Dinner", "amount": "100.00", "category": "food"}
    payload.update(fields)
    return client.post("/api/expenses", json=payload, headers=headers)


def test_create_expense_equal_split(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    response = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_between=[{"user_id": ids["alice"]}, {"user_id": ids["bob"]}],
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["paid_by"] == ids["alice"]
    assert body["currency"] == "USD"
    assert body["version"] == 1
    assert body["is_split"] is True
    assert [s["amount"] for s in body["split_between"]] == ["50.00", "50.00"]


def test_equal_split_remainder_goes_to_first_participant(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    response = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_between=[{"user_id": ids[name]} for name in ("alice", "bob", "carol")],
    )
    assert response.status_code == 201, response.text
    amounts = [s["amount"] for s in response.json()["split_between"]]
    assert amounts == ["33.34", "33.33", "33.33"]


def test_create_expense_custom_split_mismatch(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    response = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_type="custom",
        split_between=[
            {"user_id": ids["alice"], "amount": "50.00"},
            {"user_id": ids["bob"], "amount": "49.50"},
        ],
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "split_mismatch"
    assert body["field"] == "split_between"


def test_create_expense_rejects_sub_cent_amount(client, trip_group):
    response = create_expense(
        client, trip_group["headers"]["alice"], trip_group["trip_id"], amount="10.005"
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert [e["loc"] for e in body["detail"]] == [["body", "amount"]]


def test_create_expense_rejects_huge_amount(client, trip_group):
    response = create_expense(
        client, trip_group["headers"]["alice"], trip_group["trip_id"], amount=1e30
    )
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_create_expense_rejects_non_member_share(client, trip_group, register):
    outsider_id, _ = register("mallory")
    response = create_expense(
        client, trip_group["headers"]["alice"], trip_group["trip_id"],
        split_between=[{"user_id": outsider_id}],
    )
    assert response.status_code == 422
    assert response.json()["field"] == "split_between"


def test_outsider_cannot_use_trip(client, trip_group, register):
    _, outsider = register("mallory")
    response = create_expense(client, outsider, trip_group["trip_id"])
    assert response.status_code == 403
    assert response.json()["error"] == "access_denied"

    response = client.get(f"/api/expenses/trip/{trip_group['trip_id']}/summary", headers=outsider)
    assert response.status_code == 403


def test_pending_invitee_has_no_access(client, register, new_trip):
    _, owner = register("olivia")
    _, guest = register("gabe")
    trip_id = new_trip(owner)
    response = client.post(
        f"/api/trips/{trip_id}/participants", json={"username": "gabe"}, headers=owner
    )
    assert response.status_code == 201

    assert client.get(f"/api/trips/{trip_id}", headers=guest).status_code == 403


def test_settle_split_and_summary(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    trip_id = trip_group["trip_id"]
    expense = create_expense(
        client, headers["alice"], trip_id,
        split_between=[{"user_id": ids["alice"]}, {"user_id": ids["bob"]}],
    ).json()

    response = client.post(f"/api/expenses/{expense['id']}/settle", json={}, headers=headers["alice"])
    assert response.status_code == 200, response.text
    shares = {s["user_id"]: s for s in response.json()["split_between"]}
    assert shares[ids["alice"]]["settled"] is True
    assert shares[ids["alice"]]["settled_at"] is not None
    assert shares[ids["bob"]]["settled"] is False

    summary = client.get(f"/api/expenses/trip/{trip_id}/summary", headers=headers["bob"]).json()
    assert summary["total_amount"] == "100.00"
    assert summary["total_count"] == 1
    assert summary["unsettled_amount"] == "50.00"
    assert summary["by_category"][0]["category"] == "food"
    assert summary["settlements"] == [
        {
            "paid_by": ids["alice"],
            "owed_by": ids["bob"],
            "total_owed": "50.00",
            "settled_amount": "0.00",
            "unsettled_amount": "50.00",
        }
    ]


def test_settle_twice_is_rejected(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    expense = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_between=[{"user_id": ids["alice"]}, {"user_id": ids["bob"]}],
    ).json()

    url = f"/api/expenses/{expense['id']}/settle"
    assert client.post(url, json={}, headers=headers["bob"]).status_code == 200
    response = client.post(url, json={}, headers=headers["bob"])
    assert response.status_code == 409
    assert response.json()["error"] == "already_settled"


def test_settle_unknown_share(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    expense = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_between=[{"user_id": ids["alice"]}, {"user_id": ids["bob"]}],
    ).json()

    response = client.post(f"/api/expenses/{expense['id']}/settle", json={}, headers=headers["carol"])
    assert response.status_code == 404
    assert response.json()["error"] == "share_not_found"


def test_only_payer_settles_someone_elses_share(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    expense = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_between=[{"user_id": ids[name]} for name in ("alice", "bob", "carol")],
    ).json()

    url = f"/api/expenses/{expense['id']}/settle"
    response = client.post(url, json={"user_id": ids["bob"]}, headers=headers["carol"])
    assert response.status_code == 403

    response = client.post(url, json={"user_id": ids["bob"]}, headers=headers["alice"])
    assert response.status_code == 200


def test_add_split_then_finalize(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    expense = create_expense(
        client, headers["alice"], trip_group["trip_id"], amount="80.00", status="pending"
    ).json()
    assert expense["split_between"] == []

    split_url = f"/api/expenses/{expense['id']}/split"
    response = client.post(split_url, json={"user_id": ids["bob"], "amount": "30.00"}, headers=headers["alice"])
    assert response.status_code == 200, response.text
    assert response.json()["split_type"] == "custom"

    finalize_url = f"/api/expenses/{expense['id']}/finalize"
    response = client.post(finalize_url, headers=headers["alice"])
    assert response.status_code == 422
    assert response.json()["error"] == "split_mismatch"

    client.post(split_url, json={"user_id": ids["alice"], "amount": "50.00"}, headers=headers["alice"])
    response = client.post(finalize_url, headers=headers["alice"])
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
    assert response.json()["total_split_amount"] == "80.00"


def test_only_creator_or_owner_edits(client, trip_group):
    headers = trip_group["headers"]
    expense = create_expense(client, headers["bob"], trip_group["trip_id"]).json()
    url = f"/api/expenses/{expense['id']}"

    response = client.put(url, json={"title": "Lunch"}, headers=headers["carol"])
    assert response.status_code == 403

    # alice owns the trip
    response = client.put(url, json={"title": "Lunch"}, headers=headers["alice"])
    assert response.status_code == 200
    assert response.json()["title"] == "Lunch"
    assert response.json()["last_modified_by"] == trip_group["ids"]["alice"]
    assert response.json()["version"] == 2


def test_update_amount_recomputes_equal_split(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    expense = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_between=[{"user_id": ids["alice"]}, {"user_id": ids["bob"]}, {"user_id": ids["carol"]}],
    ).json()

    response = client.put(f"/api/expenses/{expense['id']}", json={"amount": "90.00"}, headers=headers["alice"])
    assert response.status_code == 200, response.text
    assert [s["amount"] for s in response.json()["split_between"]] == ["30.00", "30.00", "30.00"]


def test_update_with_stale_version_conflicts(client, trip_group):
    headers = trip_group["headers"]
    expense = create_expense(client, headers["alice"], trip_group["trip_id"]).json()
    url = f"/api/expenses/{expense['id']}"

    assert client.put(url, json={"title": "First", "version": 1}, headers=headers["alice"]).status_code == 200
    response = client.put(url, json={"title": "Second", "version": 1}, headers=headers["alice"])
    assert response.status_code == 409
    assert response.json()["error"] == "concurrency_conflict"


def test_delete_twice(client, trip_group):
    headers = trip_group["headers"]
    trip_id = trip_group["trip_id"]
    expense = create_expense(client, headers["alice"], trip_id).json()
    url = f"/api/expenses/{expense['id']}"

    response = client.delete(url, headers=headers["alice"])
    assert response.status_code == 200
    assert response.json()["message"] == "Expense deleted successfully"

    assert client.delete(url, headers=headers["alice"]).status_code == 404
    assert client.get(url, headers=headers["alice"]).status_code == 404

    summary = client.get(f"/api/expenses/trip/{trip_id}/summary", headers=headers["alice"]).json()
    assert summary["total_count"] == 0


def test_empty_trip_summary(client, trip_group):
    response = client.get(
        f"/api/expenses/trip/{trip_group['trip_id']}/summary", headers=trip_group["headers"]["alice"]
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total_amount"] == "0.00"
    assert body["total_count"] == 0
    assert body["by_category"] == []
    assert body["settlements"] == []
    assert body["transfers"] == []


def test_list_expenses_filters_and_paginates(client, trip_group):
    headers = trip_group["headers"]["alice"]
    trip_id = trip_group["trip_id"]
    create_expense(client, headers, trip_id, title="Taxi", category="transport", date="2024-05-01")
    create_expense(client, headers, trip_id, title="Dinner", category="food", date="2024-05-02")
    create_expense(client, headers, trip_id, title="Lunch", category="food", date="2024-05-03")

    response = client.get("/api/expenses", params={"trip_id": trip_id, "limit": 2}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert [e["title"] for e in body["expenses"]] == ["Lunch", "Dinner"]
    assert body["pagination"] == {
        "current_page": 1, "total_pages": 2, "total_items": 3, "items_per_page": 2
    }

    response = client.get("/api/expenses", params={"trip_id": trip_id, "category": "food"}, headers=headers)
    assert response.json()["pagination"]["total_items"] == 2

    response = client.get(
        "/api/expenses",
        params={"start_date": "2024-05-02", "end_date": "2024-05-02"},
        headers=headers
    )
    assert [e["title"] for e in response.json()["expenses"]] == ["Dinner"]


def test_user_summary_is_private(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    create_expense(client, headers["bob"], trip_group["trip_id"], date="2024-05-02")
    create_expense(client, headers["bob"], trip_group["trip_id"], amount="20.00", date="2024-05-03")

    response = client.get(f"/api/expenses/users/{ids['bob']}/summary", headers=headers["bob"])
    assert response.status_code == 200
    assert response.json()["items"] == [
        {"category": "food", "year": 2024, "month": 5, "currency": "USD", "total_amount": "120.00", "count": 2}
    ]

    response = client.get(f"/api/expenses/users/{ids['bob']}/summary", headers=headers["carol"])
    assert response.status_code == 403


def test_update_amount_with_new_custom_split(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    expense = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        split_type="custom",
        split_between=[
            {"user_id": ids["alice"], "amount": "60.00"},
            {"user_id": ids["bob"], "amount": "40.00"},
        ],
    ).json()

    response = client.put(
        f"/api/expenses/{expense['id']}",
        json={
            "amount": "200.00",
            "split_between": [
                {"user_id": ids["alice"], "amount": "120.00"},
                {"user_id": ids["bob"], "amount": "80.00"},
            ],
        },
        headers=headers["alice"]
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["amount"] == "200.00"
    assert [s["amount"] for s in body["split_between"]] == ["120.00", "80.00"]

    # the new shares must still match the new total
    response = client.put(
        f"/api/expenses/{expense['id']}",
        json={
            "amount": "300.00",
            "split_between": [
                {"user_id": ids["alice"], "amount": "120.00"},
                {"user_id": ids["bob"], "amount": "80.00"},
            ],
        },
        headers=headers["alice"]
    )
    assert response.status_code == 422
    assert response.json()["error"] == "split_mismatch"


def test_update_amount_reopens_settled_share(client, trip_group):
    ids, headers = trip_group["ids"], trip_group["headers"]
    trip_id = trip_group["trip_id"]
    expense = create_expense(
        client, headers["alice"], trip_id,
        split_between=[{"user_id": ids["alice"]}, {"user_id": ids["bob"]}],
    ).json()
    client.post(f"/api/expenses/{expense['id']}/settle", json={}, headers=headers["bob"])

    response = client.put(f"/api/expenses/{expense['id']}", json={"amount": "300.00"}, headers=headers["alice"])
    assert response.status_code == 200, response.text
    shares = {s["user_id"]: s for s in response.json()["split_between"]}
    assert shares[ids["bob"]]["amount"] == "150.00"
    assert shares[ids["bob"]]["settled"] is False

    plan = client.get(f"/api/settlement/{trip_id}", headers=headers["alice"]).json()
    assert [(t["from_user_id"], t["amount"]) for t in plan["transfers"]] == [(ids["bob"], "150.00")]


def test_update_rejects_blank_title(client, trip_group):
    headers = trip_group["headers"]
    expense = create_expense(client, headers["alice"], trip_group["trip_id"]).json()
    response = client.put(f"/api/expenses/{expense['id']}", json={"title": "   "}, headers=headers["alice"])
    assert response.status_code == 422

    stored = client.get(f"/api/expenses/{expense['id']}", headers=headers["alice"]).json()
    assert stored["title"] == "Dinner"


def test_receipt_metadata(client, trip_group):
    headers = trip_group["headers"]
    response = create_expense(
        client, headers["alice"], trip_group["trip_id"],
        receipt={"url": "https://files.example.com/r/1.jpg", "filename": "1.jpg"},
    )
    assert response.status_code == 201, response.text
    receipt = response.json()["receipt"]
    assert receipt["url"] == "https://files.example.com/r/1.jpg"
    assert receipt["filename"] == "1.jpg"
    assert receipt["uploaded_at"] is not None

    response = client.put(
        f"/api/expenses/{response.json()['id']}", json={"receipt": None}, headers=headers["alice"]
    )
    assert response.status_code == 200
    assert response.json()["receipt"] is None


def test_recurring_expense_needs_frequency_and_end_date(client, trip_group):
    headers = trip_group["headers"]
    trip_id = trip_group["trip_id"]

    response = create_expense(
        client, headers["alice"], trip_id, date="2024-05-01",
        is_recurring=True, recurring_pattern={"frequency": "daily"},
    )
    assert response.status_code == 422
    assert response.json()["field"] == "recurring_pattern.end_date"

    response = create_expense(client, headers["alice"], trip_id, date="2024-05-01", is_recurring=True)
    assert response.status_code == 422
    assert response.json()["field"] == "recurring_pattern.frequency"

    response = create_expense(
        client, headers["alice"], trip_id, date="2024-05-01",
        is_recurring=True, recurring_pattern={"frequency": "weekly", "end_date": "2024-05-29"},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["is_recurring"] is True
    assert body["recurring_pattern"] == {"frequency": "weekly", "end_date": "2024-05-29"}

    response = client.put(f"/api/expenses/{body['id']}", json={"is_recurring": False}, headers=headers["alice"])
    assert response.status_code == 200
    assert response.json()["is_recurring"] is False
    assert response.json()["recurring_pattern"] is None
