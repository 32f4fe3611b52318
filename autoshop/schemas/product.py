from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from autoshop.models.product import Currency


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    sale_price: Decimal = Field(default=Decimal("0"), ge=0)
    vip_price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: int = Field(default=0, ge=0)
    min_quantity: int = Field(default=0, ge=0)
    unit: str = Field(default="pcs", min_length=1, max_length=20)
    currency: Currency = Currency.UZS
    description: str = ""
    branch_id: Optional[str] = None
    is_available: bool = True


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    """Catalog fields only; stock moves through orders or restock."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    vip_price: Optional[Decimal] = Field(None, ge=0)
    min_quantity: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = None
    is_available: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class ProductRestock(BaseModel):
    quantity: int = Field(..., gt=0)


class ProductResponse(ProductBase):
    id: str
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductListResponse(BaseModel):
    total: int
    products: List[ProductResponse]
