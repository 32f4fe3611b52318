from sqlalchemy import Boolean, Column, Date, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from autoshop.core.database import Base
from autoshop.models.base import BaseFields, generate_custom_id, money_columns, money_composite


class Client(BaseFields, Base):
    __tablename__ = "clients"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("CLI"))
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    birthday = Column(Date, nullable=True)
    phone = Column(String(20), nullable=False)
    telegram = Column(String(100), nullable=True)
    is_vip = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=False, default="")
    branch_id = Column(String(20), ForeignKey("branches.id"), nullable=True)

    # Cached sum of outstanding Debtor.remaining_debt, maintained incrementally
    debt_usd, debt_uzs = money_columns("debt")
    debt = money_composite(debt_usd, debt_uzs)

    branch = relationship("Branch", back_populates="clients")
    orders = relationship("Order", back_populates="client")
    debtors = relationship("Debtor", back_populates="client")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Client(id='{self.id}', name='{self.full_name}')>"
