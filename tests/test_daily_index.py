from datetime import datetime

import pytest

from autoshop.models import Order
from autoshop.schemas.order import OrderCreate
from autoshop.services.order_service import OrderService, business_day_bounds


@pytest.fixture
def service(db):
    return OrderService(db)


@pytest.fixture
def place_order(db, service, order_payload):
    """Pending cash order stamped with a fixed UTC creation time."""
    def _place(created_at, **overrides):
        fields = dict(payment_type="cash", status="pending", debt_amount={"uzs": 0})
        fields.update(overrides)
        order = service.create(OrderCreate(**order_payload(**fields)))
        order.created_at = created_at
        db.commit()
        return order
    return _place


def test_business_day_uses_tashkent_calendar():
    # 20:00 UTC is already 01:00 the next day in Tashkent (UTC+5)
    start, end = business_day_bounds(datetime(2026, 3, 1, 20, 0))

    assert start == datetime(2026, 3, 1, 19, 0)
    assert end == datetime(2026, 3, 2, 19, 0)


def test_index_counts_same_day_orders_in_creation_order(service, place_order):
    first = place_order(datetime(2026, 3, 1, 10, 0))
    second = place_order(datetime(2026, 3, 1, 10, 0))
    third = place_order(datetime(2026, 3, 1, 12, 30))

    assert service.daily_index(first) == 1
    assert service.daily_index(second) == 2
    assert service.daily_index(third) == 3


def test_index_restarts_on_next_local_day(service, place_order):
    place_order(datetime(2026, 3, 1, 10, 0))
    place_order(datetime(2026, 3, 1, 18, 59))
    late_evening = place_order(datetime(2026, 3, 1, 20, 0))

    assert service.daily_index(late_evening) == 1


def test_deleted_orders_are_not_counted(service, place_order):
    first = place_order(datetime(2026, 3, 1, 9, 0))
    second = place_order(datetime(2026, 3, 1, 10, 0))
    third = place_order(datetime(2026, 3, 1, 11, 0))

    service.delete(second.id)

    assert service.daily_index(first) == 1
    assert service.daily_index(third) == 2
    assert service.daily_index(service.db.get(Order, second.id)) is None


def test_index_is_scoped_by_client_and_branch(service, place_order, make_client):
    other = make_client(first_name="Dilshod", phone="998907654321")
    place_order(datetime(2026, 3, 1, 9, 0), client_id=other.id)
    mine = place_order(datetime(2026, 3, 1, 10, 0))

    assert service.daily_index(mine) == 2
    assert service.daily_index(mine, client_id=mine.client_id) == 1
    assert service.daily_index(mine, branch_id=mine.branch_id) == 2
    assert service.daily_index(mine, branch_id="BR-ELSEWHERE") == 0


def test_list_reports_index_for_the_query_filter(api, customer, place_order, make_client):
    other = make_client(first_name="Dilshod", phone="998907654321")
    place_order(datetime(2026, 3, 1, 9, 0), client_id=other.id)
    mine = place_order(datetime(2026, 3, 1, 10, 0))

    unfiltered = api.get("/api/v1/orders").json()["orders"]
    filtered = api.get("/api/v1/orders", params={"client_id": customer.id}).json()["orders"]

    assert {order["id"]: order["index"] for order in unfiltered}[mine.id] == 2
    assert [(order["id"], order["index"]) for order in filtered] == [(mine.id, 1)]
    assert api.get(f"/api/v1/orders/{mine.id}", params={"client_id": customer.id}).json()["index"] == 1
