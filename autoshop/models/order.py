import enum

from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from autoshop.core.database import Base
from autoshop.models.base import BaseFields, money_columns, money_composite


class OrderStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class PaymentType(str, enum.Enum):
    cash = "cash"
    card = "card"
    debt = "debt"


class Order(BaseFields, Base):
    __tablename__ = "orders"

    # Integer key doubles as creation order for the daily index
    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(20), ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(String(20), ForeignKey("branches.id"), nullable=False, index=True)

    total_amount_usd, total_amount_uzs = money_columns("total_amount")
    paid_amount_usd, paid_amount_uzs = money_columns("paid_amount")
    debt_amount_usd, debt_amount_uzs = money_columns("debt_amount")
    profit_amount_usd, profit_amount_uzs = money_columns("profit_amount")

    total_amount = money_composite(total_amount_usd, total_amount_uzs)
    paid_amount = money_composite(paid_amount_usd, paid_amount_uzs)
    debt_amount = money_composite(debt_amount_usd, debt_amount_uzs)
    profit_amount = money_composite(profit_amount_usd, profit_amount_uzs)

    payment_type = Column(Enum(PaymentType), nullable=False, default=PaymentType.cash)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.pending, index=True)
    due_date = Column(Date, nullable=True)  # date_returned
    notes = Column(Text, nullable=False, default="")
    created_by = Column(String(64), nullable=True)

    client = relationship("Client", back_populates="orders")
    branch = relationship("Branch")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def is_completed(self) -> bool:
        return self.status == OrderStatus.completed

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status}')>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(20), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(18, 2), nullable=False)
    next_oil_change_date = Column(Date, nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
