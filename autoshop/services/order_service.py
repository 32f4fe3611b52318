"""
Order state machine

Every order mutation (create, edit, status change, payment, delete) runs
through the same transition rules:

    was completed | will be completed | products changed | stock
    --------------+-------------------+------------------+------------------------------
    yes           | yes               | no               | nothing
    yes           | yes               | yes              | restore old, decrement new
    yes           | no                | any              | restore old
    no            | yes               | any              | decrement (checks availability)
    no            | no                | any              | nothing

Debt follows the order's effective debt (debt_amount of a completed debt
order, zero otherwise). The cash record follows its effective sale: money
is recorded when received, whatever the status, and voided while the order
is cancelled. Everything an operation touches is committed once; any error
rolls the whole operation back.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from autoshop.core.config import settings
from autoshop.core.exceptions import MissingDueDateError, NotFoundError, ServiceError, ValidationError
from autoshop.logger_config import logger
from autoshop.models.branch import Branch
from autoshop.models.client import Client
from autoshop.models.money import Money
from autoshop.models.order import Order, OrderItem, OrderStatus, PaymentType
from autoshop.models.product import Product
from autoshop.models.transaction import RelatedModel
from autoshop.schemas.order import OrderCreate, OrderItemCreate, OrderUpdate
from autoshop.services.debt_reconciler import DebtReconciler
from autoshop.services.stock_adjuster import StockAdjuster
from autoshop.services.transaction_recorder import TransactionRecorder


def effective_debt(order: Order) -> Money:
    if order.payment_type == PaymentType.debt and order.status == OrderStatus.completed:
        return order.debt_amount
    return Money.zero()


def effective_sale(order: Order) -> Money:
    if order.status == OrderStatus.cancelled:
        return Money.zero()
    return order.paid_amount


def compute_profit(items: Iterable, products: Dict[str, Product]) -> Money:
    """Sum of (price - cost_price) * quantity, in each product's currency."""
    profit = Money.zero()
    for item in items:
        product = products[item.product_id]
        margin = (item.price - product.cost_price) * item.quantity
        profit += Money.in_currency(product.currency.value, margin)
    return profit


def business_day_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """UTC [start, end) of the business-timezone calendar day containing ``moment`` (naive UTC)."""
    tz = ZoneInfo(settings.BUSINESS_TIMEZONE)
    local = moment.replace(tzinfo=timezone.utc).astimezone(tz)
    start_local = datetime.combine(local.date(), time.min, tzinfo=tz)
    return _to_naive_utc(start_local), _to_naive_utc(start_local + timedelta(days=1))


def business_date_start(day: date) -> datetime:
    tz = ZoneInfo(settings.BUSINESS_TIMEZONE)
    return _to_naive_utc(datetime.combine(day, time.min, tzinfo=tz))


def _to_naive_utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class OrderService:

    def __init__(self, db: Session):
        self.db = db
        self.stock = StockAdjuster(db)
        self.recorder = TransactionRecorder(db)
        self.debts = DebtReconciler(db, self.recorder)

    # ================= HELPERS ===================

    def _require_client(self, client_id: str) -> Client:
        client = self.db.query(Client).filter(Client.id == client_id, Client.is_deleted.is_(False)).first()
        if not client:
            raise NotFoundError("Client", client_id)
        return client

    def _require_branch(self, branch_id: str) -> Branch:
        branch = self.db.query(Branch).filter(Branch.id == branch_id, Branch.is_deleted.is_(False)).first()
        if not branch:
            raise NotFoundError("Branch", branch_id)
        return branch

    def _load_order(self, order_id: int, lock: bool = False, include_deleted: bool = False) -> Order:
        query = (
            self.db.query(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .filter(Order.id == order_id)
        )
        if not include_deleted:
            query = query.filter(Order.is_deleted.is_(False))
        if lock:
            query = query.with_for_update()
        order = query.first()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    def _build_items(items: List[OrderItemCreate]) -> List[OrderItem]:
        return [
            OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                next_oil_change_date=item.next_oil_change_date,
            )
            for item in items
        ]

    def _check_due_date(self, order: Order, new_effective: Money, old_effective: Money, due_date: Optional[date]) -> None:
        """Raise before any mutation when new debt would need a debtor that cannot be created."""
        increase = (new_effective - old_effective).floor_zero()
        if increase.is_zero() or due_date is not None:
            return
        if self.debts.booking_target(order) is None:
            logger.error(f"Debt {increase.describe()} without date_returned for client {order.client_id}")
            raise MissingDueDateError(increase)

    def _commit(self, order: Order, action: str) -> Order:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error while trying to {action} order #{order.id}: {str(e)}", exc_info=True)
            raise
        self.db.refresh(order)
        return order

    # ================= CREATE ===================

    def create(self, data: OrderCreate, created_by: Optional[str] = None) -> Order:
        logger.info(f"Creating order for client {data.client_id} at branch {data.branch_id}")
        try:
            self._require_client(data.client_id)
            self._require_branch(data.branch_id)
            products = self.stock.load_products(item.product_id for item in data.products)

            debt_amount = Money.of(data.debt_amount)
            if data.payment_type == PaymentType.debt and debt_amount.is_positive() and data.date_returned is None:
                raise MissingDueDateError(debt_amount)

            order = Order(
                client_id=data.client_id,
                branch_id=data.branch_id,
                total_amount=Money.of(data.total_amount),
                paid_amount=Money.of(data.paid_amount),
                debt_amount=debt_amount,
                profit_amount=compute_profit(data.products, products),
                payment_type=data.payment_type,
                status=data.status,
                due_date=data.date_returned,
                notes=data.notes,
                created_by=created_by,
            )
            order.items = self._build_items(data.products)

            if order.is_completed:
                self.stock.decrement(data.products)

            self.db.add(order)
            self.db.flush()

            self.recorder.record_order_sale(order, effective_sale(order))
            self.debts.apply_order_debt(order, Money.zero(), effective_debt(order), data.date_returned)

        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error creating order: {str(e)}", exc_info=True)
            raise

        order = self._commit(order, "create")
        logger.info(
            f"✅ Order #{order.id} created ({order.status.value}, {order.payment_type.value}) "
            f"total {order.total_amount.describe()}"
        )
        return order

    # ================= UPDATE / STATUS ===================

    def update(self, order_id: int, patch: OrderUpdate, updated_by: Optional[str] = None) -> Order:
        fields = patch.model_fields_set
        logger.info(f"Updating order #{order_id}: {sorted(fields)}")
        try:
            order = self._load_order(order_id, lock=True)

            was_completed = order.is_completed
            old_debt = effective_debt(order)
            old_sale = effective_sale(order)

            new_status = patch.status if "status" in fields and patch.status else order.status
            new_payment_type = patch.payment_type if "payment_type" in fields and patch.payment_type else order.payment_type
            new_debt_amount = Money.of(patch.debt_amount) if "debt_amount" in fields and patch.debt_amount is not None else order.debt_amount
            new_due_date = patch.date_returned if "date_returned" in fields else order.due_date
            will_complete = new_status == OrderStatus.completed
            products_changed = "products" in fields and patch.products is not None

            # validation before any mutation
            new_debt = new_debt_amount if new_payment_type == PaymentType.debt and will_complete else Money.zero()
            self._check_due_date(order, new_debt, old_debt, new_due_date)
            new_products = None
            if products_changed:
                new_products = self.stock.load_products(item.product_id for item in patch.products)

            # stock
            if products_changed:
                if was_completed:
                    self.stock.restore(order.items)
                if will_complete:
                    self.stock.decrement(patch.products)
                order.items = self._build_items(patch.products)
                order.profit_amount = compute_profit(patch.products, new_products)
            elif was_completed and not will_complete:
                self.stock.restore(order.items)
            elif will_complete and not was_completed:
                self.stock.decrement(order.items)

            # remaining allow-listed fields
            for name in ("total_amount", "paid_amount", "debt_amount"):
                if name in fields and getattr(patch, name) is not None:
                    setattr(order, name, Money.of(getattr(patch, name)))
            order.payment_type = new_payment_type
            order.status = new_status
            order.due_date = new_due_date
            if "notes" in fields and patch.notes is not None:
                order.notes = patch.notes
            self.db.flush()

            self.debts.apply_order_debt(order, old_debt, effective_debt(order), new_due_date)

            new_sale = effective_sale(order)
            if new_sale != old_sale:
                self.recorder.replace_order_sale(order, new_sale, reason=f"order #{order.id} updated")

        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error updating order #{order_id}: {str(e)}", exc_info=True)
            raise

        order = self._commit(order, "update")
        logger.info(f"✅ Order #{order_id} updated by {updated_by}, status {order.status.value}")
        return order

    def change_status(self, order_id: int, status: OrderStatus, updated_by: Optional[str] = None) -> Order:
        return self.update(order_id, OrderUpdate(status=status), updated_by=updated_by)

    # ================= PAYMENT ===================

    def add_payment(
        self,
        order_id: int,
        amount: Money,
        payment_type: PaymentType = PaymentType.cash,
        created_by: Optional[str] = None,
    ) -> Order:
        """Take a payment against the order's outstanding debt."""
        if payment_type == PaymentType.debt:
            raise ValidationError("A debt cannot be paid with payment_type 'debt'")
        if not amount.is_positive():
            raise ValidationError("Payment amount must be greater than 0")

        try:
            order = self._load_order(order_id, lock=True)
            if order.status == OrderStatus.cancelled:
                raise ValidationError(f"Order #{order_id} is cancelled; reopen it before taking a payment")
            if amount.exceeds(order.debt_amount):
                raise ValidationError(
                    f"Payment {amount.describe()} exceeds order debt {order.debt_amount.describe()}",
                    errors=[{"debt_amount": order.debt_amount.as_float_dict(), "payment": amount.as_float_dict()}],
                )

            old_sale = effective_sale(order)
            if not effective_debt(order).is_zero():
                self.debts.apply_order_payment(order, amount, payment_type, created_by=created_by)

            order.paid_amount = order.paid_amount + amount
            order.debt_amount = order.debt_amount - amount
            self.db.flush()

            new_sale = effective_sale(order)
            if new_sale != old_sale:
                self.recorder.replace_order_sale(order, new_sale, reason=f"payment {amount.describe()}")

        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error adding payment to order #{order_id}: {str(e)}", exc_info=True)
            raise

        order = self._commit(order, "pay")
        logger.info(f"✅ Payment {amount.describe()} added to order #{order_id}, debt left {order.debt_amount.describe()}")
        return order

    # ================= DELETE ===================

    def delete(self, order_id: int, deleted_by: Optional[str] = None) -> Order:
        """Soft delete; a completed order is reversed first."""
        try:
            order = self._load_order(order_id, lock=True, include_deleted=True)
            if order.is_deleted:
                raise ValidationError(f"Order #{order_id} is already deleted")

            if order.is_completed:
                self.stock.restore(order.items)
                self.debts.apply_order_debt(order, effective_debt(order), Money.zero())

            self.recorder.void_related(RelatedModel.Order, order.id, reason="order deleted")
            order.mark_deleted()
            self.db.flush()

        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error deleting order #{order_id}: {str(e)}", exc_info=True)
            raise

        order = self._commit(order, "delete")
        logger.info(f"Order #{order_id} deleted by {deleted_by}")
        return order

    # ================= QUERIES ===================

    def get(self, order_id: int) -> Order:
        return self._load_order(order_id)

    def _filtered_query(
        self,
        client_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        payment_type: Optional[PaymentType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ):
        query = self.db.query(Order).filter(Order.is_deleted.is_(False))
        if client_id:
            query = query.filter(Order.client_id == client_id)
        if branch_id:
            query = query.filter(Order.branch_id == branch_id)
        if status:
            query = query.filter(Order.status == status)
        if payment_type:
            query = query.filter(Order.payment_type == payment_type)
        if start_date:
            query = query.filter(Order.created_at >= business_date_start(start_date))
            logger.debug(f"Filtering by start_date: {start_date}")
        if end_date:
            query = query.filter(Order.created_at < business_date_start(end_date + timedelta(days=1)))
            logger.debug(f"Filtering by end_date: {end_date}")
        return query

    def list_orders(
        self,
        skip: int = 0,
        limit: int = 20,
        **filters,
    ) -> Tuple[List[Order], int]:
        query = self._filtered_query(**filters)
        total = query.count()
        orders = (
            query.options(selectinload(Order.items).selectinload(OrderItem.product))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return orders, total

    def daily_index(self, order: Order, client_id: Optional[str] = None, branch_id: Optional[str] = None) -> Optional[int]:
        """
        1-based position of ``order`` among the non-deleted orders created on
        the same business day that match the client/branch filter, counting
        in creation order (ties broken by id). Computed on every read.
        """
        if order.is_deleted or order.created_at is None:
            return None
        day_start, _ = business_day_bounds(order.created_at)
        query = self.db.query(Order).filter(
            Order.is_deleted.is_(False),
            Order.created_at >= day_start,
            or_(
                Order.created_at < order.created_at,
                and_(Order.created_at == order.created_at, Order.id <= order.id),
            ),
        )
        if client_id:
            query = query.filter(Order.client_id == client_id)
        if branch_id:
            query = query.filter(Order.branch_id == branch_id)
        return query.count()

    def get_stats(
        self,
        branch_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        orders = self._filtered_query(branch_id=branch_id, start_date=start_date, end_date=end_date).all()

        groups: Dict[OrderStatus, dict] = {}
        by_payment_type: Dict[str, int] = defaultdict(int)
        for order in orders:
            group = groups.setdefault(order.status, {
                "status": order.status,
                "total_orders": 0,
                "total_amount": Money.zero(),
                "total_paid": Money.zero(),
                "total_debt": Money.zero(),
                "total_profit": Money.zero(),
            })
            group["total_orders"] += 1
            group["total_amount"] += order.total_amount
            group["total_paid"] += order.paid_amount
            group["total_debt"] += order.debt_amount
            group["total_profit"] += order.profit_amount
            by_payment_type[order.payment_type.value] += 1

        return {
            "groups": [
                {key: (value.as_dict() if isinstance(value, Money) else value) for key, value in group.items()}
                for _, group in sorted(groups.items(), key=lambda pair: pair[0].value)
            ],
            "total_orders": len(orders),
            "by_payment_type": dict(by_payment_type),
        }
