from datetime import date, timedelta
from decimal import Decimal

from autoshop.models import Transaction
from autoshop.models.money import Money
from autoshop.models.transaction import BALANCE_SIGN


def _amount(money, currency="uzs"):
    return Decimal(str(money[currency]))


def _balance(api):
    return api.get("/api/v1/transactions/balance").json()["amount"]


def test_balance_starts_at_zero(api):
    balance = _balance(api)
    assert _amount(balance) == 0
    assert _amount(balance, "usd") == 0


def test_cash_in_and_cash_out_move_the_balance(api, notifier):
    response = api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 100, "usd": 10}, "description": "Float"})
    assert response.status_code == 201, response.text
    assert response.json()["transaction"]["type"] == "cash-in"
    assert _amount(response.json()["balance"]) == 100

    response = api.post("/api/v1/transactions/cash-out", json={"amount": {"uzs": 30}})
    assert response.status_code == 201, response.text
    assert _amount(response.json()["balance"]) == 70
    assert _amount(response.json()["balance"], "usd") == 10
    assert len(notifier.messages) == 2
    assert "cash-out" in notifier.messages[-1]


def test_cash_out_beyond_balance_is_rejected(api, db):
    api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 50}})

    response = api.post("/api/v1/transactions/cash-out", json={"amount": {"uzs": 60}})

    assert response.status_code == 400
    assert "Insufficient balance" in response.json()["message"]
    assert _amount(_balance(api)) == 50
    assert db.query(Transaction).count() == 1


def test_cash_out_in_other_currency_checks_that_currency(api):
    api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 500}})

    response = api.post("/api/v1/transactions/cash-out", json={"amount": {"usd": 1}})

    assert response.status_code == 400


def test_zero_amount_is_rejected(api):
    assert api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 0}}).status_code == 400


def test_delete_takes_amount_back_out(api):
    api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 100}})
    out_id = api.post("/api/v1/transactions/cash-out", json={"amount": {"uzs": 30}}).json()["transaction"]["id"]

    response = api.delete(f"/api/v1/transactions/{out_id}")

    assert response.status_code == 200, response.text
    assert _amount(response.json()["balance"]) == 100
    assert api.delete(f"/api/v1/transactions/{out_id}").status_code == 404


def test_balance_matches_signed_sum_of_active_records(api, db, order_payload):
    api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 1000}})
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]
    api.post(f"/api/v1/orders/{order_id}/payments", json={"amount": {"uzs": 5}})
    api.post("/api/v1/transactions/cash-out", json={"amount": {"uzs": 200}})
    api.patch(f"/api/v1/orders/{order_id}/status", json={"status": "cancelled"})

    expected = Money.zero()
    for transaction in db.query(Transaction).filter(Transaction.is_deleted.is_(False)):
        expected += transaction.amount * BALANCE_SIGN[transaction.type]

    assert _amount(_balance(api)) == expected.uzs == 800


def test_list_filters_and_paginates(api, order_payload):
    for amount in (10, 20, 30):
        api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": amount}})
    api.post("/api/v1/orders", json=order_payload())

    page = api.get("/api/v1/transactions", params={"page": 1, "limit": 2}).json()
    assert page["total_items"] == 5
    assert page["total_pages"] == 3
    assert len(page["transactions"]) == 2

    cash_ins = api.get("/api/v1/transactions", params={"type": "cash-in"}).json()
    assert cash_ins["total_items"] == 3
    assert {t["type"] for t in cash_ins["transactions"]} == {"cash-in"}

    debts = api.get("/api/v1/transactions", params={"payment_type": "debt"}).json()
    assert {t["type"] for t in debts["transactions"]} == {"order", "debt-created"}


def test_statistics_group_by_type_day_and_payment_type(api, order_payload):
    api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 100}})
    api.post("/api/v1/transactions/cash-in", json={"amount": {"uzs": 50}, "payment_type": "card"})
    api.post("/api/v1/orders", json=order_payload())
    window = {"start_date": (date.today() - timedelta(days=1)).isoformat(), "end_date": (date.today() + timedelta(days=1)).isoformat()}

    response = api.get("/api/v1/transactions/statistics", params=window)

    assert response.status_code == 200, response.text
    by_type = {row["key"]: row for row in response.json()["by_type"]}
    assert by_type["cash-in"]["count"] == 2
    assert _amount(by_type["cash-in"]["total"]) == 150
    assert _amount(by_type["order"]["total"]) == 20
    by_payment_type = {row["key"]: row["count"] for row in response.json()["by_payment_type"]}
    assert by_payment_type == {"card": 1, "cash": 1, "debt": 2}


def test_statistics_require_a_date_range(api):
    assert api.get("/api/v1/transactions/statistics").status_code == 400


def test_client_balance(api, customer, order_payload):
    api.post("/api/v1/orders", json=order_payload())

    body = api.get(f"/api/v1/transactions/client/{customer.id}/balance").json()

    assert _amount(body["total_income"]) == 20
    assert _amount(body["total_outcome"]) == 10
    assert _amount(body["balance"]) == 10
    assert set(body["by_type"]) == {"order", "debt-created"}
