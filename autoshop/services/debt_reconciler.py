"""
Debt reconciler

Keeps Client.debt, the Debtor ledger and the originating orders in step.
Client.debt is a cache of the client's outstanding Debtor.remaining_debt and
is only ever changed here, by the same amount as the debtor it mirrors.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from autoshop.core.exceptions import MissingDueDateError, NotFoundError, ServiceError, ValidationError
from autoshop.logger_config import logger
from autoshop.models.branch import Branch
from autoshop.models.client import Client
from autoshop.models.debtor import Debtor, DebtorPayment, DebtorStatus, OrderDebt
from autoshop.models.money import Money
from autoshop.models.order import Order, PaymentType
from autoshop.models.base import utcnow
from autoshop.models.transaction import RelatedModel, TransactionType
from autoshop.services.transaction_recorder import TransactionRecorder

OPEN_STATUSES = (DebtorStatus.pending, DebtorStatus.partial, DebtorStatus.overdue)


def derive_status(debtor: Debtor) -> DebtorStatus:
    remaining = debtor.remaining_debt
    if remaining.usd <= 0 and remaining.uzs <= 0:
        return DebtorStatus.paid
    paid = debtor.paid_amount
    if paid.usd > 0 or paid.uzs > 0:
        return DebtorStatus.partial
    return DebtorStatus.pending


class DebtReconciler:

    def __init__(self, db: Session, recorder: Optional[TransactionRecorder] = None):
        self.db = db
        self.recorder = recorder or TransactionRecorder(db)

    # ================= LOOKUPS ===================

    def get_client(self, client_id: str, lock: bool = True) -> Client:
        query = self.db.query(Client).filter(Client.id == client_id, Client.is_deleted.is_(False))
        if lock:
            query = query.with_for_update()
        client = query.first()
        if not client:
            raise NotFoundError("Client", client_id)
        return client

    def get_debtor(self, debtor_id: str) -> Debtor:
        debtor = (
            self.db.query(Debtor)
            .options(joinedload(Debtor.client))
            .filter(Debtor.id == debtor_id, Debtor.is_deleted.is_(False))
            .first()
        )
        if not debtor:
            raise NotFoundError("Debtor", debtor_id)
        return debtor

    def find_open_debtor(self, client_id: str, branch_id: Optional[str]) -> Optional[Debtor]:
        """The oldest non-paid debtor for {client, branch}."""
        return (
            self.db.query(Debtor)
            .filter(
                Debtor.client_id == client_id,
                Debtor.branch_id == branch_id,
                Debtor.status.in_(OPEN_STATUSES),
                Debtor.is_deleted.is_(False),
            )
            .order_by(Debtor.created_at.asc())
            .with_for_update()
            .first()
        )

    def find_order_debtor(self, order: Order) -> Optional[Debtor]:
        """
        The debtor the order's debt was booked onto, while it is still open.

        A deleted or fully paid debtor yields None: the order's share of it is
        settled and must not be taken from another order's debtor instead.
        """
        link = self.db.get(OrderDebt, order.id)
        if link is None:
            return None
        return (
            self.db.query(Debtor)
            .filter(
                Debtor.id == link.debtor_id,
                Debtor.status.in_(OPEN_STATUSES),
                Debtor.is_deleted.is_(False),
            )
            .with_for_update()
            .first()
        )

    def booking_target(self, order: Order) -> Optional[Debtor]:
        """Where new debt for the order would land; None means a debtor must be created."""
        return self.find_order_debtor(order) or self.find_open_debtor(order.client_id, order.branch_id)

    def _link(self, order: Order, debtor: Debtor) -> None:
        link = self.db.get(OrderDebt, order.id)
        if link is None:
            self.db.add(OrderDebt(order_id=order.id, debtor_id=debtor.id))
        elif link.debtor_id != debtor.id:
            logger.info(f"Order #{order.id} debt moved from debtor {link.debtor_id} to {debtor.id}")
            link.debtor_id = debtor.id
        self.db.flush()

    # ================= INTERNAL MUTATIONS ===================

    def _book(
        self,
        client: Client,
        branch_id: Optional[str],
        amount: Money,
        due_date: Optional[date],
        debtor: Optional[Debtor] = None,
        order: Optional[Order] = None,
        description: str = "",
        created_by: Optional[str] = None,
    ) -> Debtor:
        """Add debt onto ``debtor`` (or the open one for {client, branch}), creating it when missing."""
        if debtor is None:
            debtor = self.find_open_debtor(client.id, branch_id)

        if debtor is None:
            if due_date is None:
                raise MissingDueDateError(amount)
            debtor = Debtor(
                client_id=client.id,
                branch_id=branch_id,
                order_id=order.id if order is not None else None,
                total_debt=amount,
                paid_amount=Money.zero(),
                remaining_debt=amount,
                last_payment=Money.zero(),
                next_payment=Money.zero(),
                due_date=due_date,
                description=description,
                status=DebtorStatus.pending,
                created_by=created_by,
            )
            self.db.add(debtor)
            logger.info(f"Debtor created for client {client.id}: {amount.describe()}")
        else:
            debtor.total_debt = debtor.total_debt + amount
            debtor.remaining_debt = debtor.remaining_debt + amount
            if due_date and (debtor.due_date is None or due_date > debtor.due_date):
                debtor.due_date = due_date
            debtor.status = derive_status(debtor)
            logger.info(f"Debt {amount.describe()} added to debtor {debtor.id}")

        client.debt = client.debt + amount
        self.db.flush()
        return debtor

    def _reverse(self, client: Client, debtor: Optional[Debtor], amount: Money) -> Money:
        """Cancel up to ``amount`` of unpaid debt. Returns what was actually reversed."""
        if debtor is None:
            logger.warning(f"No open debtor to reverse from for client {client.id}; nothing reversed")
            return Money.zero()

        reversed_amount = amount.min(debtor.remaining_debt.floor_zero())
        debtor.total_debt = debtor.total_debt - reversed_amount
        debtor.remaining_debt = debtor.remaining_debt - reversed_amount
        client.debt = client.debt - reversed_amount

        if debtor.total_debt.is_zero() and debtor.paid_amount.is_zero():
            debtor.mark_deleted()
            logger.info(f"Debtor {debtor.id} fully reversed and removed")
        else:
            debtor.status = derive_status(debtor)
            logger.info(f"Debt {reversed_amount.describe()} reversed on debtor {debtor.id}")
        self.db.flush()
        return reversed_amount

    def _apply_payment(
        self,
        debtor: Debtor,
        client: Client,
        payment: Money,
        payment_type: PaymentType,
        description: str = "",
        created_by: Optional[str] = None,
        next_payment: Optional[Money] = None,
        next_payment_due_date: Optional[date] = None,
    ) -> DebtorPayment:
        if not payment.is_positive():
            raise ValidationError("Payment amount must be greater than 0")
        if payment.exceeds(debtor.remaining_debt):
            raise ValidationError(
                f"Payment {payment.describe()} exceeds remaining debt {debtor.remaining_debt.describe()}",
                errors=[{
                    "remaining_debt": debtor.remaining_debt.as_float_dict(),
                    "payment": payment.as_float_dict(),
                }],
            )

        now = utcnow()
        debtor.remaining_debt = debtor.remaining_debt - payment
        debtor.paid_amount = debtor.paid_amount + payment
        debtor.last_payment = payment
        debtor.last_payment_date = now
        if next_payment is not None:
            debtor.next_payment = next_payment
            debtor.next_payment_due_date = next_payment_due_date
        debtor.status = derive_status(debtor)
        client.debt = client.debt - payment

        history = DebtorPayment(
            debtor_id=debtor.id,
            amount=payment,
            payment_type=payment_type,
            description=description,
            paid_at=now,
            created_by=created_by,
        )
        self.db.add(history)
        self.db.flush()
        return history

    # ================= ORDER HOOKS ===================

    def apply_order_debt(
        self,
        order: Order,
        old_effective: Money,
        new_effective: Money,
        due_date: Optional[date] = None,
    ) -> Optional[Debtor]:
        """
        Move the client's debt by ``new_effective - old_effective`` for one order.

        Currencies are handled independently. Decreases are reversed only from
        the debtor the order's debt was booked onto; once that debtor is paid
        or deleted there is nothing left to reverse. Increases go onto that
        debtor while it is open, otherwise onto the open debtor for
        {client, branch} (created when missing), and the order is relinked.
        The order's active ``debt-created`` record is replaced to match
        ``new_effective``.
        """
        delta = new_effective - old_effective
        if delta.is_zero():
            return None

        client = self.get_client(order.client_id)
        debtor = self.find_order_debtor(order)

        increase = delta.floor_zero()
        decrease = (-delta).floor_zero()

        if not decrease.is_zero():
            self._reverse(client, debtor, decrease)
            if debtor is not None and debtor.is_deleted:
                debtor = None

        if not increase.is_zero():
            debtor = self._book(
                client,
                order.branch_id,
                increase,
                due_date or order.due_date,
                debtor=debtor,
                order=order,
                description=f"Debt from order #{order.id}",
                created_by=order.created_by,
            )
            self._link(order, debtor)

        self.recorder.void_related(
            RelatedModel.Order, order.id, TransactionType.debt_created, reason="debt changed"
        )
        if not new_effective.is_zero():
            self.recorder.record_debt_created(debtor, new_effective, order=order)

        logger.info(f"Order #{order.id} debt delta {delta.as_dict()} applied to client {client.id}")
        return debtor

    def apply_order_payment(self, order: Order, payment: Money, payment_type: PaymentType, created_by: Optional[str] = None) -> Optional[DebtorPayment]:
        """History row and debt decrease for a payment taken through the order itself."""
        client = self.get_client(order.client_id)
        debtor = self.find_order_debtor(order)
        if debtor is None:
            logger.warning(f"Order #{order.id} has booked debt but no open debtor")
            return None
        return self._apply_payment(
            debtor,
            client,
            payment,
            payment_type,
            description=f"Payment for order #{order.id}",
            created_by=created_by,
        )

    # ================= DEBTOR OPERATIONS ===================

    def pay(
        self,
        debtor_id: str,
        payment: Money,
        payment_type: PaymentType,
        next_payment: Optional[Money] = None,
        next_payment_due_date: Optional[date] = None,
        description: str = "",
        created_by: Optional[str] = None,
    ) -> Tuple[Debtor, DebtorPayment, bool]:
        """
        Apply a payment to a debtor.

        Returns (debtor, history row, became_paid). Overpayment in either
        currency is rejected so remaining_debt never goes negative.
        """
        if payment_type == PaymentType.debt:
            raise ValidationError("A debt cannot be paid with payment_type 'debt'")

        try:
            debtor = self.get_debtor(debtor_id)
            if debtor.status == DebtorStatus.paid:
                raise ValidationError(f"Debtor {debtor_id} is already paid")
            client = self.get_client(debtor.client_id)

            history = self._apply_payment(
                debtor,
                client,
                payment,
                payment_type,
                description=description,
                created_by=created_by,
                next_payment=next_payment,
                next_payment_due_date=next_payment_due_date,
            )
            self.recorder.record_debt_payment(debtor, payment, payment_type, description=description, created_by=created_by)

            self.db.commit()
            self.db.refresh(debtor)
            became_paid = debtor.status == DebtorStatus.paid
            logger.info(
                f"✅ Payment {payment.describe()} applied to debtor {debtor_id}, "
                f"remaining {debtor.remaining_debt.describe()}"
            )
            return debtor, history, became_paid

        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error paying debtor {debtor_id}: {str(e)}", exc_info=True)
            raise

    def create_direct_debt(
        self,
        client_id: str,
        branch_id: Optional[str],
        amount: Money,
        due_date: date,
        description: str = "",
        created_by: Optional[str] = None,
    ) -> Debtor:
        if not amount.is_positive():
            raise ValidationError("Debt amount must be greater than 0")
        if due_date is None:
            raise MissingDueDateError(amount)

        try:
            client = self.get_client(client_id)
            if branch_id and not self.db.query(Branch).filter(Branch.id == branch_id, Branch.is_deleted.is_(False)).first():
                raise NotFoundError("Branch", branch_id)

            debtor = self._book(
                client,
                branch_id,
                amount,
                due_date,
                description=description,
                created_by=created_by,
            )
            if description and not debtor.description:
                debtor.description = description
            self.recorder.record_debt_created(debtor, amount, created_by=created_by)

            self.db.commit()
            self.db.refresh(debtor)
            logger.info(f"✅ Direct debt {amount.describe()} booked for client {client_id} on debtor {debtor.id}")
            return debtor

        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error creating debt for client {client_id}: {str(e)}", exc_info=True)
            raise

    def update_debtor(
        self,
        debtor_id: str,
        next_payment: Optional[Money] = None,
        next_payment_due_date: Optional[date] = None,
        description: Optional[str] = None,
        due_date: Optional[date] = None,
    ) -> Debtor:
        debtor = self.get_debtor(debtor_id)

        if next_payment is not None:
            if next_payment.has_negative():
                raise ValidationError("Next payment amount cannot be negative")
            debtor.next_payment = next_payment
            debtor.next_payment_due_date = next_payment_due_date
        if description is not None:
            debtor.description = description
        if due_date is not None:
            debtor.due_date = due_date
            if debtor.status == DebtorStatus.overdue and due_date >= date.today():
                debtor.status = derive_status(debtor)

        try:
            self.db.commit()
            self.db.refresh(debtor)
            logger.info(f"Debtor {debtor_id} updated")
            return debtor
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating debtor {debtor_id}: {str(e)}", exc_info=True)
            raise

    def delete_debtor(self, debtor_id: str) -> Money:
        """Soft delete; the unpaid remainder leaves the client's debt."""
        debtor = self.get_debtor(debtor_id)
        try:
            client = self.get_client(debtor.client_id)
            reversed_debt = debtor.remaining_debt.floor_zero()
            client.debt = client.debt - reversed_debt
            debtor.mark_deleted()
            self.db.commit()
            logger.info(f"Debtor {debtor_id} deleted, {reversed_debt.describe()} removed from client {client.id}")
            return reversed_debt
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting debtor {debtor_id}: {str(e)}", exc_info=True)
            raise

    def mark_overdue(self, today: Optional[date] = None) -> int:
        """Flag open debtors whose due date has passed. Entry point for the reminder job."""
        today = today or date.today()
        debtors = (
            self.db.query(Debtor)
            .filter(
                Debtor.is_deleted.is_(False),
                Debtor.status.in_((DebtorStatus.pending, DebtorStatus.partial)),
                Debtor.due_date.isnot(None),
                Debtor.due_date < today,
            )
            .all()
        )
        for debtor in debtors:
            debtor.status = DebtorStatus.overdue
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error marking overdue debtors: {str(e)}", exc_info=True)
            raise
        logger.info(f"{len(debtors)} debtor(s) marked overdue as of {today}")
        return len(debtors)

    # ================= QUERIES ===================

    def list_debtors(
        self,
        skip: int = 0,
        limit: int = 20,
        client_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        status: Optional[DebtorStatus] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[Debtor], int]:
        query = (
            self.db.query(Debtor)
            .join(Client, Client.id == Debtor.client_id)
            .options(joinedload(Debtor.client))
            .filter(Debtor.is_deleted.is_(False))
        )

        if client_id:
            query = query.filter(Debtor.client_id == client_id)
        if branch_id:
            query = query.filter(Debtor.branch_id == branch_id)
        if status:
            query = query.filter(Debtor.status == status)
        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    Client.first_name.ilike(search_term),
                    Client.last_name.ilike(search_term),
                    Client.phone.ilike(search_term),
                    Debtor.description.ilike(search_term),
                )
            )
        if start_date:
            query = query.filter(Debtor.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(Debtor.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

        total = query.count()
        debtors = query.order_by(Debtor.created_at.desc()).offset(skip).limit(limit).all()
        return debtors, total

    def list_payments(self, debtor_id: str) -> List[DebtorPayment]:
        self.get_debtor(debtor_id)
        return (
            self.db.query(DebtorPayment)
            .filter(DebtorPayment.debtor_id == debtor_id)
            .order_by(DebtorPayment.paid_at.desc(), DebtorPayment.id.desc())
            .all()
        )

    def get_stats(self, branch_id: Optional[str] = None) -> dict:
        query = self.db.query(Debtor).filter(Debtor.is_deleted.is_(False))
        if branch_id:
            query = query.filter(Debtor.branch_id == branch_id)
        debtors = query.all()

        total_current_debt = Money.zero()
        total_paid = Money.zero()
        status_counts = {status.value: 0 for status in DebtorStatus}
        for debtor in debtors:
            total_current_debt += debtor.remaining_debt
            total_paid += debtor.paid_amount
            status_counts[debtor.status.value] += 1

        return {
            "total_current_debt": total_current_debt.as_dict(),
            "total_paid": total_paid.as_dict(),
            "status_counts": status_counts,
            "total_debtors": len(debtors),
        }
