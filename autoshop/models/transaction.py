import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text

from autoshop.core.database import Base
from autoshop.models.base import BaseFields, money_columns, money_composite, utcnow
from autoshop.models.order import PaymentType


class TransactionType(str, enum.Enum):
    cash_in = "cash-in"
    cash_out = "cash-out"
    order = "order"
    service = "service"
    debt_payment = "debt-payment"
    debt_created = "debt-created"


class RelatedModel(str, enum.Enum):
    Order = "Order"
    Service = "Service"
    Debtor = "Debtor"


# Sign applied to the cash balance; debt-created moves no cash
BALANCE_SIGN = {
    TransactionType.cash_in: 1,
    TransactionType.order: 1,
    TransactionType.service: 1,
    TransactionType.debt_payment: 1,
    TransactionType.cash_out: -1,
    TransactionType.debt_created: 0,
}


class Transaction(BaseFields, Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(
        Enum(TransactionType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    amount_usd, amount_uzs = money_columns("amount")
    amount = money_composite(amount_usd, amount_uzs)

    payment_type = Column(Enum(PaymentType), nullable=False)
    description = Column(Text, nullable=False, default="")

    related_model = Column(Enum(RelatedModel), nullable=True)
    related_id = Column(String(30), nullable=True, index=True)

    client_id = Column(String(20), ForeignKey("clients.id"), nullable=True, index=True)
    branch_id = Column(String(20), ForeignKey("branches.id"), nullable=True, index=True)
    created_by = Column(String(64), nullable=True)

    @property
    def balance_sign(self) -> int:
        return BALANCE_SIGN[self.type]

    def __repr__(self):
        return f"<Transaction(id={self.id}, type='{self.type}', related={self.related_model}:{self.related_id})>"


class Balance(Base):
    """Single-row running cash total."""
    __tablename__ = "balance"

    id = Column(Integer, primary_key=True, default=1)

    amount_usd, amount_uzs = money_columns("amount")
    amount = money_composite(amount_usd, amount_uzs)

    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
