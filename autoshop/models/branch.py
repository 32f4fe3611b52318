from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from autoshop.core.database import Base
from autoshop.models.base import BaseFields, generate_custom_id


class Branch(BaseFields, Base):
    __tablename__ = "branches"

    id = Column(String(20), primary_key=True, default=lambda: generate_custom_id("BR"))
    name = Column(String(100), nullable=False)
    address = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)

    clients = relationship("Client", back_populates="branch")
    products = relationship("Product", back_populates="branch")

    def __repr__(self):
        return f"<Branch(id='{self.id}', name='{self.name}')>"
