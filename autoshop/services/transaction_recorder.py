from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autoshop.core.exceptions import NotFoundError, ValidationError
from autoshop.logger_config import logger
from autoshop.models.money import Money
from autoshop.models.order import Order, PaymentType
from autoshop.models.debtor import Debtor
from autoshop.models.transaction import (
    BALANCE_SIGN,
    Balance,
    RelatedModel,
    Transaction,
    TransactionType,
)

INCOME_TYPES = (TransactionType.order, TransactionType.service, TransactionType.debt_payment)
OUTCOME_TYPES = (TransactionType.cash_out, TransactionType.debt_created)


class TransactionRecorder:
    """
    Append-only financial records plus the running cash balance.

    Writes triggered by orders and debts are best-effort: they run inside a
    SAVEPOINT and a failure is logged, rolled back to the savepoint and
    swallowed so the primary operation still commits.
    """

    def __init__(self, db: Session):
        self.db = db

    # ================= BALANCE ===================

    def get_balance(self, lock: bool = False) -> Balance:
        query = self.db.query(Balance).filter(Balance.id == 1)
        if lock:
            query = query.with_for_update()
        balance = query.first()
        if balance is None:
            balance = Balance(id=1, amount=Money.zero())
            self.db.add(balance)
            self.db.flush()
            logger.info("Balance row initialised")
        return balance

    def _apply_to_balance(self, transaction_type: TransactionType, amount: Money, reverse: bool = False) -> None:
        sign = BALANCE_SIGN[transaction_type]
        if sign == 0:
            return
        if reverse:
            sign = -sign
        balance = self.get_balance(lock=True)
        before = balance.amount
        balance.amount = before + amount * sign
        logger.debug(f"Balance {before.as_dict()} → {balance.amount.as_dict()} ({transaction_type.value})")

    # ================= RECORDING ===================

    def _new_transaction(
        self,
        transaction_type: TransactionType,
        amount: Money,
        payment_type: PaymentType,
        description: str = "",
        related_model: Optional[RelatedModel] = None,
        related_id=None,
        client_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Transaction:
        transaction = Transaction(
            type=transaction_type,
            amount=amount,
            payment_type=payment_type,
            description=description,
            related_model=related_model,
            related_id=str(related_id) if related_id is not None else None,
            client_id=client_id,
            branch_id=branch_id,
            created_by=created_by,
        )
        self.db.add(transaction)
        self._apply_to_balance(transaction_type, amount)
        self.db.flush()
        return transaction

    def record(self, transaction_type: TransactionType, amount: Money, payment_type: PaymentType, **fields) -> Optional[Transaction]:
        """Best-effort append. Returns None when the write failed."""
        if amount.is_zero():
            logger.debug(f"Skipping zero {transaction_type.value} transaction for {fields.get('related_id')}")
            return None
        try:
            with self.db.begin_nested():
                transaction = self._new_transaction(transaction_type, amount, payment_type, **fields)
            logger.info(
                f"Transaction recorded: {transaction.id} {transaction_type.value} "
                f"{amount.describe()} ({fields.get('related_model')}:{fields.get('related_id')})"
            )
            return transaction
        except SQLAlchemyError as e:
            logger.error(f"Failed to record {transaction_type.value} transaction: {str(e)}", exc_info=True)
            return None

    def void(self, transaction: Transaction, reason: str = "") -> None:
        """Soft-delete one record and take it out of the balance."""
        if transaction.is_deleted:
            return
        transaction.mark_deleted()
        if reason:
            transaction.description = f"{transaction.description} ({reason})".strip()
        self._apply_to_balance(transaction.type, transaction.amount, reverse=True)

    def void_related(self, related_model: RelatedModel, related_id, transaction_type: Optional[TransactionType] = None, reason: str = "") -> int:
        """Best-effort soft delete of the active records linked to an entity."""
        try:
            with self.db.begin_nested():
                query = self.db.query(Transaction).filter(
                    Transaction.related_model == related_model,
                    Transaction.related_id == str(related_id),
                    Transaction.is_deleted.is_(False),
                )
                if transaction_type is not None:
                    query = query.filter(Transaction.type == transaction_type)
                transactions = query.all()
                for transaction in transactions:
                    self.void(transaction, reason)
                self.db.flush()
            if transactions:
                logger.info(f"Voided {len(transactions)} transaction(s) for {related_model.value}:{related_id}")
            return len(transactions)
        except SQLAlchemyError as e:
            logger.error(f"Failed to void transactions for {related_model.value}:{related_id}: {str(e)}", exc_info=True)
            return 0

    # ================= ORDER / DEBT HOOKS ===================

    def record_order_sale(self, order: Order, amount: Money) -> Optional[Transaction]:
        return self.record(
            TransactionType.order,
            amount,
            order.payment_type,
            description=f"Payment for order #{order.id}",
            related_model=RelatedModel.Order,
            related_id=order.id,
            client_id=order.client_id,
            branch_id=order.branch_id,
            created_by=order.created_by,
        )

    def replace_order_sale(self, order: Order, amount: Money, reason: str) -> Optional[Transaction]:
        """Corrective pair: void the active sale record, append the new amount."""
        self.void_related(RelatedModel.Order, order.id, TransactionType.order, reason=reason)
        return self.record_order_sale(order, amount)

    def record_debt_created(self, debtor: Optional[Debtor], amount: Money, order: Optional[Order] = None, created_by: Optional[str] = None) -> Optional[Transaction]:
        if order is not None:
            return self.record(
                TransactionType.debt_created,
                amount,
                PaymentType.debt,
                description=f"Debt from order #{order.id}",
                related_model=RelatedModel.Order,
                related_id=order.id,
                client_id=order.client_id,
                branch_id=order.branch_id,
                created_by=order.created_by,
            )
        return self.record(
            TransactionType.debt_created,
            amount,
            PaymentType.debt,
            description=f"Debt entry for debtor {debtor.id}",
            related_model=RelatedModel.Debtor,
            related_id=debtor.id,
            client_id=debtor.client_id,
            branch_id=debtor.branch_id,
            created_by=created_by,
        )

    def record_debt_payment(self, debtor: Debtor, amount: Money, payment_type: PaymentType, description: str = "", created_by: Optional[str] = None) -> Optional[Transaction]:
        return self.record(
            TransactionType.debt_payment,
            amount,
            payment_type,
            description=description or f"Debt payment from client {debtor.client_id}",
            related_model=RelatedModel.Debtor,
            related_id=debtor.id,
            client_id=debtor.client_id,
            branch_id=debtor.branch_id,
            created_by=created_by,
        )

    # ================= MANUAL CASH MOVEMENTS ===================

    def cash_movement(
        self,
        transaction_type: TransactionType,
        amount: Money,
        payment_type: PaymentType,
        description: str = "",
        created_by: Optional[str] = None,
    ) -> Tuple[Transaction, Balance]:
        """Cash-in / cash-out. Unlike order hooks these are the primary write and fail loudly."""
        if transaction_type not in (TransactionType.cash_in, TransactionType.cash_out):
            raise ValidationError(f"Unsupported cash movement type: {transaction_type.value}")
        if not amount.is_positive():
            raise ValidationError("Amount must be greater than 0")

        try:
            balance = self.get_balance(lock=True)
            if transaction_type == TransactionType.cash_out and amount.exceeds(balance.amount):
                shortage = (amount - balance.amount).floor_zero()
                logger.error(f"Cash-out {amount.describe()} exceeds balance {balance.amount.describe()}")
                raise ValidationError(
                    f"Insufficient balance: available {balance.amount.describe()}, "
                    f"requested {amount.describe()}, shortage {shortage.describe()}",
                    errors=[{"available": balance.amount.as_float_dict(), "requested": amount.as_float_dict()}],
                )

            transaction = self._new_transaction(
                transaction_type,
                amount,
                payment_type,
                description=description,
                created_by=created_by,
            )
            self.db.commit()
            self.db.refresh(transaction)
            self.db.refresh(balance)
            logger.info(f"✅ {transaction_type.value} recorded: {transaction.id} - {amount.describe()}")
            return transaction, balance

        except ValidationError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error in {transaction_type.value}: {str(e)}", exc_info=True)
            raise

    def delete_transaction(self, transaction_id: int) -> Balance:
        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction or transaction.is_deleted:
            raise NotFoundError("Transaction", transaction_id)
        try:
            self.void(transaction, reason="deleted")
            self.db.commit()
            balance = self.get_balance()
            logger.info(f"Transaction {transaction_id} deleted, balance {balance.amount.describe()}")
            return balance
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting transaction {transaction_id}: {str(e)}", exc_info=True)
            raise

    # ================= QUERIES ===================

    def _filtered_query(
        self,
        transaction_type: Optional[TransactionType] = None,
        payment_type: Optional[PaymentType] = None,
        client_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_deleted: bool = False,
    ):
        query = self.db.query(Transaction)
        if not include_deleted:
            query = query.filter(Transaction.is_deleted.is_(False))
        if transaction_type:
            query = query.filter(Transaction.type == transaction_type)
        if payment_type:
            query = query.filter(Transaction.payment_type == payment_type)
        if client_id:
            query = query.filter(Transaction.client_id == client_id)
        if branch_id:
            query = query.filter(Transaction.branch_id == branch_id)
        if start_date:
            query = query.filter(Transaction.created_at >= datetime.combine(start_date, time.min))
            logger.debug(f"Filtering by start_date: {start_date}")
        if end_date:
            query = query.filter(Transaction.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
            logger.debug(f"Filtering by end_date: {end_date}")
        return query

    def list_transactions(
        self,
        page: int = 1,
        limit: int = 20,
        **filters,
    ) -> Tuple[List[Transaction], int]:
        query = self._filtered_query(**filters)
        total = query.count()
        rows = (
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def get_statistics(self, start_date: date, end_date: date, branch_id: Optional[str] = None) -> Dict[str, List[dict]]:
        """Sums grouped by type, by day and by payment type."""
        transactions = self._filtered_query(
            branch_id=branch_id,
            start_date=start_date,
            end_date=end_date,
        ).all()

        groups = {"by_type": defaultdict(list), "by_day": defaultdict(list), "by_payment_type": defaultdict(list)}
        for transaction in transactions:
            groups["by_type"][transaction.type.value].append(transaction.amount)
            groups["by_day"][transaction.created_at.date().isoformat()].append(transaction.amount)
            groups["by_payment_type"][transaction.payment_type.value].append(transaction.amount)

        result = {}
        for name, grouped in groups.items():
            result[name] = [
                {
                    "key": key,
                    "total": sum(amounts, Money.zero()).as_dict(),
                    "count": len(amounts),
                }
                for key, amounts in sorted(grouped.items())
            ]
        return result

    def client_balance(self, client_id: str) -> dict:
        """Income (order, service, debt-payment) against outcome (cash-out, debt-created)."""
        transactions = self._filtered_query(client_id=client_id).all()
        income = Money.zero()
        outcome = Money.zero()
        by_type: Dict[str, Money] = defaultdict(Money.zero)
        for transaction in transactions:
            by_type[transaction.type.value] += transaction.amount
            if transaction.type in INCOME_TYPES:
                income += transaction.amount
            elif transaction.type in OUTCOME_TYPES:
                outcome += transaction.amount

        return {
            "client_id": client_id,
            "total_income": income.as_dict(),
            "total_outcome": outcome.as_dict(),
            "balance": (income - outcome).as_dict(),
            "by_type": {k: v.as_dict() for k, v in by_type.items()},
        }
