from decimal import Decimal

import pytest

from autoshop.core.exceptions import InsufficientStockError
from autoshop.models import Debtor, Product, Transaction, TransactionType
from autoshop.models.client import Client
from autoshop.models.money import Money
from autoshop.models.order import OrderStatus
from autoshop.models.transaction import BALANCE_SIGN, Balance
from autoshop.schemas.order import OrderCreate
from autoshop.services.order_service import OrderService, effective_debt, effective_sale


def _outstanding(db, client_id):
    total = Money.zero()
    for debtor in db.query(Debtor).filter(Debtor.client_id == client_id, Debtor.is_deleted.is_(False)):
        total += debtor.remaining_debt
    return total


def _signed_ledger(db):
    total = Money.zero()
    for transaction in db.query(Transaction).filter(Transaction.is_deleted.is_(False)):
        total += transaction.amount * BALANCE_SIGN[transaction.type]
    return total


@pytest.fixture
def service(db):
    return OrderService(db)


@pytest.fixture
def debt_order(service, order_payload):
    return service.create(OrderCreate(**order_payload()), created_by="ADM-TEST")


def test_effective_amounts_follow_status_and_payment_type(debt_order):
    assert effective_debt(debt_order).uzs == 10
    assert effective_sale(debt_order).uzs == 20

    debt_order.status = OrderStatus.pending
    assert effective_debt(debt_order).is_zero()
    assert effective_sale(debt_order).uzs == 20

    debt_order.status = OrderStatus.cancelled
    assert effective_sale(debt_order).is_zero()


def test_completed_to_completed_changes_nothing(db, service, debt_order, product, customer):
    transactions_before = db.query(Transaction).count()

    service.change_status(debt_order.id, OrderStatus.completed)

    db.expire_all()
    assert db.get(Product, product.id).quantity == 7
    assert db.get(Client, customer.id).debt.uzs == 10
    assert db.query(Transaction).count() == transactions_before


@pytest.mark.parametrize("path", [
    [OrderStatus.cancelled, OrderStatus.completed, OrderStatus.pending, OrderStatus.completed, OrderStatus.cancelled],
    [OrderStatus.pending, OrderStatus.cancelled, OrderStatus.pending],
    [OrderStatus.cancelled, OrderStatus.completed, OrderStatus.completed, OrderStatus.pending],
])
def test_status_cycles_conserve_stock_debt_and_cash(db, service, debt_order, product, customer, path):
    for status in path:
        service.change_status(debt_order.id, status)

        db.expire_all()
        order = service.get(debt_order.id)
        expected_quantity = 7 if order.is_completed else 10
        expected_debt = Decimal("10") if order.is_completed else Decimal("0")
        assert db.get(Product, product.id).quantity == expected_quantity
        client = db.get(Client, customer.id)
        assert client.debt.uzs == expected_debt
        assert client.debt == _outstanding(db, customer.id)
        assert db.get(Balance, 1).amount == _signed_ledger(db)
        assert db.get(Balance, 1).amount == effective_sale(order)


def test_reopening_to_completed_checks_stock(db, service, debt_order, product):
    service.change_status(debt_order.id, OrderStatus.pending)
    product = db.get(Product, product.id)
    product.quantity = 2
    db.commit()

    with pytest.raises(InsufficientStockError) as error:
        service.change_status(debt_order.id, OrderStatus.completed)

    assert error.value.available == 2
    assert error.value.requested == 3
    db.expire_all()
    assert service.get(debt_order.id).status == OrderStatus.pending
    assert db.get(Product, product.id).quantity == 2


def test_restore_reaches_products_removed_from_catalog(db, service, debt_order, product):
    catalog_product = db.get(Product, product.id)
    catalog_product.mark_deleted()
    db.commit()

    service.change_status(debt_order.id, OrderStatus.cancelled)

    db.expire_all()
    assert db.get(Product, product.id).quantity == 10


def test_failed_ledger_write_does_not_block_the_order(db, service, order_payload, customer, monkeypatch):
    from sqlalchemy.exc import SQLAlchemyError
    from autoshop.services.transaction_recorder import TransactionRecorder

    def broken(self, *args, **kwargs):
        raise SQLAlchemyError("ledger unavailable")

    monkeypatch.setattr(TransactionRecorder, "_new_transaction", broken)

    order = service.create(OrderCreate(**order_payload()))

    assert order.id is not None
    db.expire_all()
    assert db.get(Client, customer.id).debt.uzs == 10
    assert db.query(Transaction).filter(Transaction.type == TransactionType.order).count() == 0
