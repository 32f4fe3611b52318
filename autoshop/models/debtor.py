import enum

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from autoshop.core.database import Base
from autoshop.models.base import BaseFields, generate_custom_id, money_columns, money_composite, utcnow
from autoshop.models.order import PaymentType


class DebtorStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    overdue = "overdue"


class Debtor(BaseFields, Base):
    __tablename__ = "debtors"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("DBT"))
    client_id = Column(String(20), ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(String(20), ForeignKey("branches.id"), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)

    total_debt_usd, total_debt_uzs = money_columns("total_debt")
    paid_amount_usd, paid_amount_uzs = money_columns("paid_amount")
    remaining_debt_usd, remaining_debt_uzs = money_columns("remaining_debt")
    last_payment_usd, last_payment_uzs = money_columns("last_payment")
    next_payment_usd, next_payment_uzs = money_columns("next_payment")

    total_debt = money_composite(total_debt_usd, total_debt_uzs)
    paid_amount = money_composite(paid_amount_usd, paid_amount_uzs)
    remaining_debt = money_composite(remaining_debt_usd, remaining_debt_uzs)
    last_payment = money_composite(last_payment_usd, last_payment_uzs)
    next_payment = money_composite(next_payment_usd, next_payment_uzs)

    last_payment_date = Column(DateTime, nullable=True)
    next_payment_due_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)  # date_returned
    description = Column(Text, nullable=False, default="")
    status = Column(Enum(DebtorStatus), nullable=False, default=DebtorStatus.pending, index=True)
    created_by = Column(String(64), nullable=True)

    client = relationship("Client", back_populates="debtors")
    branch = relationship("Branch")
    order = relationship("Order")
    payments = relationship(
        "DebtorPayment",
        back_populates="debtor",
        cascade="all, delete-orphan",
        order_by="DebtorPayment.paid_at.desc()",
    )

    def __repr__(self):
        return f"<Debtor(id='{self.id}', client='{self.client_id}', status='{self.status}')>"


class DebtorPayment(Base):
    """Payment history line for a debtor."""
    __tablename__ = "debtor_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    debtor_id = Column(String(20), ForeignKey("debtors.id"), nullable=False, index=True)

    amount_usd, amount_uzs = money_columns("amount")
    amount = money_composite(amount_usd, amount_uzs)

    payment_type = Column(Enum(PaymentType), nullable=False, default=PaymentType.cash)
    description = Column(Text, nullable=False, default="")
    paid_at = Column(DateTime, nullable=False, default=utcnow)
    created_by = Column(String(64), nullable=True)

    debtor = relationship("Debtor", back_populates="payments")


class OrderDebt(Base):
    """The debtor an order's debt is currently booked onto."""
    __tablename__ = "order_debts"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True)
    debtor_id = Column(String(20), ForeignKey("debtors.id"), nullable=False, index=True)
    linked_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    debtor = relationship("Debtor")
