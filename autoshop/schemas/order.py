"""
Order schemas
Request validation and response serialization for orders, order status
changes and order payments.
"""

from decimal import Decimal
from datetime import date, datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from autoshop.models.order import OrderStatus, PaymentType
from autoshop.schemas.money import MoneyIn, MoneyOut


# ============================================================================
# Request Schemas
# ============================================================================

class OrderItemCreate(BaseModel):
    """One line item of an order"""
    product_id: str = Field(..., min_length=1, description="Product ID")
    quantity: int = Field(..., gt=0, description="Quantity (must be positive)")
    price: Decimal = Field(..., ge=0, description="Unit sale price")
    next_oil_change_date: Optional[date] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"product_id": "PRD-AB12CD34", "quantity": 3, "price": 10}
        }
    )


class OrderCreate(BaseModel):
    """Schema for submitting a new order"""
    client_id: str = Field(..., min_length=1)
    branch_id: str = Field(..., min_length=1)
    products: List[OrderItemCreate] = Field(..., min_length=1)
    total_amount: MoneyIn
    paid_amount: MoneyIn = Field(default_factory=MoneyIn)
    debt_amount: MoneyIn = Field(default_factory=MoneyIn)
    payment_type: PaymentType
    status: OrderStatus = OrderStatus.pending
    date_returned: Optional[date] = Field(None, description="Debt due date")
    notes: str = ""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": "CLI-AB12CD34",
                "branch_id": "BR-AB12CD34",
                "products": [{"product_id": "PRD-AB12CD34", "quantity": 3, "price": 10}],
                "total_amount": {"usd": 0, "uzs": 30},
                "paid_amount": {"usd": 0, "uzs": 20},
                "debt_amount": {"usd": 0, "uzs": 10},
                "payment_type": "debt",
                "status": "completed",
                "date_returned": "2026-12-01",
            }
        }
    )


class OrderUpdate(BaseModel):
    """Fields an order edit may touch. Anything else is rejected."""
    products: Optional[List[OrderItemCreate]] = Field(None, min_length=1)
    total_amount: Optional[MoneyIn] = None
    paid_amount: Optional[MoneyIn] = None
    debt_amount: Optional[MoneyIn] = None
    payment_type: Optional[PaymentType] = None
    status: Optional[OrderStatus] = None
    date_returned: Optional[date] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def validate_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderPaymentCreate(BaseModel):
    """Payment against the outstanding debt of an order"""
    amount: MoneyIn
    payment_type: PaymentType = PaymentType.cash

    @model_validator(mode="after")
    def validate_amount(self):
        if self.amount.usd == 0 and self.amount.uzs == 0:
            raise ValueError("Payment amount must be greater than 0")
        return self


# ============================================================================
# Response Schemas
# ============================================================================

class OrderItemResponse(BaseModel):
    id: int
    product_id: str
    product_name: Optional[str] = None
    quantity: int
    price: Decimal
    line_total: Decimal
    next_oil_change_date: Optional[date] = None


class OrderResponse(BaseModel):
    id: int
    client_id: str
    branch_id: str
    products: List[OrderItemResponse]
    total_amount: MoneyOut
    paid_amount: MoneyOut
    debt_amount: MoneyOut
    profit_amount: MoneyOut
    payment_type: PaymentType
    status: OrderStatus
    date_returned: Optional[date] = None
    notes: str = ""
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False
    index: Optional[int] = Field(None, description="1-based position among same-day orders")


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    skip: int
    limit: int


class OrderDeleteResponse(BaseModel):
    message: str
    order: OrderResponse


class OrderStatsGroup(BaseModel):
    status: OrderStatus
    total_orders: int
    total_amount: MoneyOut
    total_paid: MoneyOut
    total_debt: MoneyOut
    total_profit: MoneyOut


class OrderStatsResponse(BaseModel):
    groups: List[OrderStatsGroup]
    total_orders: int
    by_payment_type: Dict[str, int]
