import enum

from sqlalchemy import Boolean, CheckConstraint, Column, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from autoshop.core.database import Base
from autoshop.models.base import BaseFields, generate_custom_id


class Currency(str, enum.Enum):
    USD = "USD"
    UZS = "UZS"


class Product(BaseFields, Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
    )

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("PRD"))
    name = Column(String(150), nullable=False)
    cost_price = Column(Numeric(18, 2), nullable=False, default=0)
    sale_price = Column(Numeric(18, 2), nullable=False, default=0)
    vip_price = Column(Numeric(18, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=0)
    min_quantity = Column(Integer, nullable=False, default=0)
    unit = Column(String(20), nullable=False, default="pcs")
    currency = Column(Enum(Currency), nullable=False, default=Currency.UZS)
    description = Column(Text, nullable=False, default="")
    is_available = Column(Boolean, nullable=False, default=True)
    branch_id = Column(String(20), ForeignKey("branches.id"), nullable=True)
    created_by = Column(String(64), nullable=True)

    branch = relationship("Branch", back_populates="products")

    def __repr__(self):
        return f"<Product(id='{self.id}', name='{self.name}', qty={self.quantity})>"
