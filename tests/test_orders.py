from datetime import timedelta
from decimal import Decimal

from autoshop.models import Currency, Debtor, DebtorPayment, Order, Product, Transaction, TransactionType
from autoshop.models.client import Client
from autoshop.models.debtor import DebtorStatus


def _active_transactions(db, transaction_type=None):
    query = db.query(Transaction).filter(Transaction.is_deleted.is_(False))
    if transaction_type:
        query = query.filter(Transaction.type == transaction_type)
    return query.all()


def _balance(api):
    response = api.get("/api/v1/transactions/balance")
    assert response.status_code == 200
    return response.json()["amount"]


def test_completed_debt_order_takes_stock_books_debt_and_records_sale(api, db, customer, product, order_payload):
    response = api.post("/api/v1/orders", json=order_payload())

    assert response.status_code == 201, response.text
    body = response.json()
    assert Decimal(str(body["profit_amount"]["uzs"])) == 15
    assert body["index"] == 1
    assert body["products"][0]["product_name"] == product.name

    db.expire_all()
    assert db.get(Product, product.id).quantity == 7
    assert db.get(Client, customer.id).debt.uzs == 10

    debtors = db.query(Debtor).filter(Debtor.client_id == customer.id).all()
    assert len(debtors) == 1
    assert debtors[0].remaining_debt.uzs == 10
    assert debtors[0].order_id == body["id"]
    assert debtors[0].status == DebtorStatus.pending

    sales = _active_transactions(db, TransactionType.order)
    assert len(sales) == 1
    assert sales[0].amount.uzs == 20
    assert sales[0].related_id == str(body["id"])
    assert len(_active_transactions(db, TransactionType.debt_created)) == 1


def test_cancelling_completed_order_restores_stock_and_client_debt(api, db, customer, product, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.patch(f"/api/v1/orders/{order_id}/status", json={"status": "cancelled"})

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "cancelled"
    db.expire_all()
    assert db.get(Product, product.id).quantity == 10
    assert db.get(Client, customer.id).debt.uzs == 0
    assert _active_transactions(db, TransactionType.order) == []
    assert Decimal(str(_balance(api)["uzs"])) == 0


def test_insufficient_stock_is_rejected_without_changes(api, db, customer, product, order_payload):
    payload = order_payload(products=[{"product_id": product.id, "quantity": 11, "price": 10}])

    response = api.post("/api/v1/orders", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["product"] == product.id
    assert body["errors"][0]["available"] == 10
    assert body["errors"][0]["requested"] == 11
    db.expire_all()
    assert db.get(Product, product.id).quantity == 10
    assert db.get(Client, customer.id).debt.uzs == 0
    assert db.query(Order).count() == 0
    assert db.query(Transaction).count() == 0


def test_duplicate_lines_are_checked_against_combined_quantity(api, db, product, order_payload):
    payload = order_payload(products=[
        {"product_id": product.id, "quantity": 6, "price": 10},
        {"product_id": product.id, "quantity": 6, "price": 10},
    ])

    response = api.post("/api/v1/orders", json=payload)

    assert response.status_code == 400
    assert response.json()["errors"][0]["requested"] == 12
    db.expire_all()
    assert db.get(Product, product.id).quantity == 10


def test_debt_order_without_due_date_is_rejected(api, db, customer, product, order_payload):
    payload = order_payload()
    del payload["date_returned"]

    response = api.post("/api/v1/orders", json=payload)

    assert response.status_code == 400
    assert "date_returned" in response.json()["message"]
    db.expire_all()
    assert db.get(Product, product.id).quantity == 10
    assert db.query(Order).count() == 0


def test_unknown_references_return_404(api, order_payload):
    response = api.post("/api/v1/orders", json=order_payload(client_id="CLI-MISSING"))
    assert response.status_code == 404

    response = api.post("/api/v1/orders", json=order_payload(
        products=[{"product_id": "PRD-MISSING", "quantity": 1, "price": 10}]
    ))
    assert response.status_code == 404
    assert "PRD-MISSING" in response.json()["message"]


def test_empty_line_items_fail_validation(api, order_payload):
    response = api.post("/api/v1/orders", json=order_payload(products=[]))

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "products"


def test_pending_order_leaves_stock_and_debt_until_completed(api, db, customer, product, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload(status="pending")).json()["id"]

    db.expire_all()
    assert db.get(Product, product.id).quantity == 10
    assert db.get(Client, customer.id).debt.uzs == 0
    assert db.query(Debtor).count() == 0
    sales = _active_transactions(db, TransactionType.order)
    assert [sale.amount.uzs for sale in sales] == [20]
    assert _active_transactions(db, TransactionType.debt_created) == []

    response = api.patch(f"/api/v1/orders/{order_id}/status", json={"status": "completed"})

    assert response.status_code == 200, response.text
    db.expire_all()
    assert db.get(Product, product.id).quantity == 7
    assert db.get(Client, customer.id).debt.uzs == 10
    assert db.query(Debtor).filter(Debtor.order_id == order_id).one().remaining_debt.uzs == 10
    assert len(_active_transactions(db, TransactionType.order)) == 1


def test_profit_is_split_by_product_currency(api, make_product, order_payload):
    usd_part = make_product(name="Air filter", quantity=5, cost_price=5, sale_price=8, currency=Currency.USD)
    uzs_part = make_product(name="Washer fluid", quantity=5, cost_price=1000, sale_price=1500)

    response = api.post("/api/v1/orders", json=order_payload(
        products=[
            {"product_id": usd_part.id, "quantity": 2, "price": 8},
            {"product_id": uzs_part.id, "quantity": 1, "price": 1500},
        ],
        total_amount={"usd": 16, "uzs": 1500},
        paid_amount={"usd": 16, "uzs": 1500},
        debt_amount={"usd": 0, "uzs": 0},
        payment_type="cash",
    ))

    assert response.status_code == 201, response.text
    profit = response.json()["profit_amount"]
    assert Decimal(str(profit["usd"])) == 6
    assert Decimal(str(profit["uzs"])) == 500


def test_replacing_products_restores_old_lines_then_takes_new(api, db, make_product, order_payload):
    oil = make_product(name="Oil", quantity=10, cost_price=5)
    filter_ = make_product(name="Filter", quantity=5, cost_price=2)
    order_id = api.post("/api/v1/orders", json=order_payload(
        products=[{"product_id": oil.id, "quantity": 3, "price": 10}],
        payment_type="cash",
        debt_amount={"usd": 0, "uzs": 0},
    )).json()["id"]

    response = api.patch(f"/api/v1/orders/{order_id}", json={
        "products": [{"product_id": filter_.id, "quantity": 2, "price": 4}],
    })

    assert response.status_code == 200, response.text
    assert Decimal(str(response.json()["profit_amount"]["uzs"])) == 4
    assert [line["product_id"] for line in response.json()["products"]] == [filter_.id]
    db.expire_all()
    assert db.get(Product, oil.id).quantity == 10
    assert db.get(Product, filter_.id).quantity == 3


def test_replacing_products_with_too_many_rolls_back(api, db, make_product, order_payload):
    oil = make_product(name="Oil", quantity=10)
    filter_ = make_product(name="Filter", quantity=1)
    order_id = api.post("/api/v1/orders", json=order_payload(
        products=[{"product_id": oil.id, "quantity": 3, "price": 10}],
    )).json()["id"]

    response = api.patch(f"/api/v1/orders/{order_id}", json={
        "products": [{"product_id": filter_.id, "quantity": 2, "price": 4}],
    })

    assert response.status_code == 400
    db.expire_all()
    assert db.get(Product, oil.id).quantity == 7
    assert db.get(Product, filter_.id).quantity == 1
    assert len(db.get(Order, order_id).items) == 1


def test_update_rejects_fields_outside_the_allow_list(api, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.patch(f"/api/v1/orders/{order_id}", json={"client_id": "CLI-OTHER"})
    assert response.status_code == 400

    response = api.patch(f"/api/v1/orders/{order_id}", json={})
    assert response.status_code == 400


def test_changing_debt_of_completed_order_applies_the_difference(api, db, customer, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.patch(f"/api/v1/orders/{order_id}", json={
        "paid_amount": {"uzs": 15},
        "debt_amount": {"uzs": 15},
    })

    assert response.status_code == 200, response.text
    db.expire_all()
    assert db.get(Client, customer.id).debt.uzs == 15
    debtor = db.query(Debtor).filter(Debtor.order_id == order_id).one()
    assert debtor.remaining_debt.uzs == 15
    assert debtor.total_debt.uzs == 15
    sales = _active_transactions(db, TransactionType.order)
    assert [t.amount.uzs for t in sales] == [15]
    debt_records = _active_transactions(db, TransactionType.debt_created)
    assert [t.amount.uzs for t in debt_records] == [15]
    assert Decimal(str(_balance(api)["uzs"])) == 15


def test_switching_to_cash_reverses_booked_debt(api, db, customer, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.patch(f"/api/v1/orders/{order_id}", json={
        "payment_type": "cash",
        "paid_amount": {"uzs": 30},
        "debt_amount": {"uzs": 0},
    })

    assert response.status_code == 200, response.text
    db.expire_all()
    assert db.get(Client, customer.id).debt.uzs == 0
    assert db.query(Debtor).filter(Debtor.is_deleted.is_(False)).count() == 0


def test_second_debt_order_merges_into_open_debtor(api, db, customer, product, order_payload, due_date):
    later = due_date + timedelta(days=10)
    first_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]
    api.post("/api/v1/orders", json=order_payload(
        products=[{"product_id": product.id, "quantity": 1, "price": 10}],
        total_amount={"uzs": 10},
        paid_amount={"uzs": 5},
        debt_amount={"uzs": 5},
        date_returned=later.isoformat(),
    ))

    db.expire_all()
    debtors = db.query(Debtor).filter(Debtor.is_deleted.is_(False)).all()
    assert len(debtors) == 1
    assert debtors[0].order_id == first_id
    assert debtors[0].total_debt.uzs == 15
    assert debtors[0].remaining_debt.uzs == 15
    assert debtors[0].due_date == later
    assert db.get(Client, customer.id).debt.uzs == 15


def test_payment_on_order_moves_debt_to_paid(api, db, customer, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.post(f"/api/v1/orders/{order_id}/payments", json={"amount": {"uzs": 4}, "payment_type": "card"})

    assert response.status_code == 200, response.text
    body = response.json()
    assert Decimal(str(body["paid_amount"]["uzs"])) == 24
    assert Decimal(str(body["debt_amount"]["uzs"])) == 6
    db.expire_all()
    assert db.get(Client, customer.id).debt.uzs == 6
    debtor = db.query(Debtor).filter(Debtor.order_id == order_id).one()
    assert debtor.remaining_debt.uzs == 6
    assert debtor.paid_amount.uzs == 4
    assert debtor.status == DebtorStatus.partial
    assert db.query(DebtorPayment).filter(DebtorPayment.debtor_id == debtor.id).count() == 1
    assert Decimal(str(_balance(api)["uzs"])) == 24


def test_payment_larger_than_order_debt_is_rejected(api, db, customer, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.post(f"/api/v1/orders/{order_id}/payments", json={"amount": {"uzs": 11}})

    assert response.status_code == 400
    db.expire_all()
    assert db.get(Order, order_id).debt_amount.uzs == 10
    assert db.get(Client, customer.id).debt.uzs == 10


def test_delete_reverses_completed_order(api, db, customer, product, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    response = api.delete(f"/api/v1/orders/{order_id}")

    assert response.status_code == 200, response.text
    assert response.json()["order"]["is_deleted"] is True
    db.expire_all()
    assert db.get(Product, product.id).quantity == 10
    assert db.get(Client, customer.id).debt.uzs == 0
    assert _active_transactions(db) == []
    assert api.get(f"/api/v1/orders/{order_id}").status_code == 404

    again = api.delete(f"/api/v1/orders/{order_id}")
    assert again.status_code == 400
    assert "already deleted" in again.json()["message"]


def test_create_publishes_event_and_notifies(api, customer, branch, order_payload, publisher, notifier):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]

    event, payload, branch_id = publisher.events[0]
    assert event == "new_order"
    assert branch_id == branch.id
    assert payload["id"] == order_id
    assert payload["client"]["name"] == customer.full_name
    assert payload["index"] == 1
    assert len(notifier.messages) == 1
    assert notifier.sms[0][0] == customer.phone

    api.patch(f"/api/v1/orders/{order_id}/status", json={"status": "pending"})
    assert publisher.events[-1][0] == "order_updated"


def test_stats_summary_groups_by_status(api, order_payload):
    api.post("/api/v1/orders", json=order_payload())
    api.post("/api/v1/orders", json=order_payload(status="pending"))

    response = api.get("/api/v1/orders/stats/summary")

    assert response.status_code == 200
    body = response.json()
    assert body["total_orders"] == 2
    groups = {group["status"]: group for group in body["groups"]}
    assert groups["completed"]["total_orders"] == 1
    assert Decimal(str(groups["completed"]["total_debt"]["uzs"])) == 10
    assert body["by_payment_type"] == {"debt": 2}


def test_list_filters_by_status(api, order_payload):
    api.post("/api/v1/orders", json=order_payload())
    api.post("/api/v1/orders", json=order_payload(status="pending"))

    response = api.get("/api/v1/orders", params={"status": "pending"})

    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert response.json()["orders"][0]["status"] == "pending"


def test_payment_on_pending_order_is_recorded_as_received(api, db, customer, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload(status="pending")).json()["id"]

    response = api.post(f"/api/v1/orders/{order_id}/payments", json={"amount": {"uzs": 5}})

    assert response.status_code == 200, response.text
    assert Decimal(str(response.json()["paid_amount"]["uzs"])) == 25
    db.expire_all()
    sales = _active_transactions(db, TransactionType.order)
    assert [sale.amount.uzs for sale in sales] == [25]
    assert db.query(DebtorPayment).count() == 0
    assert db.get(Client, customer.id).debt.uzs == 0
    assert Decimal(str(_balance(api)["uzs"])) == 25


def test_payment_on_cancelled_order_is_rejected(api, db, order_payload):
    order_id = api.post("/api/v1/orders", json=order_payload()).json()["id"]
    api.patch(f"/api/v1/orders/{order_id}/status", json={"status": "cancelled"})

    response = api.post(f"/api/v1/orders/{order_id}/payments", json={"amount": {"uzs": 5}})

    assert response.status_code == 400
    assert "cancelled" in response.json()["message"]
    db.expire_all()
    assert db.get(Order, order_id).paid_amount.uzs == 20
    assert _active_transactions(db, TransactionType.order) == []
