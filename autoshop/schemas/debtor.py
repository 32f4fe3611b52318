from datetime import date, datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from autoshop.models.debtor import DebtorStatus
from autoshop.models.order import PaymentType
from autoshop.schemas.money import MoneyIn, MoneyOut


class NextPayment(BaseModel):
    amount: MoneyIn = Field(default_factory=MoneyIn)
    due_date: Optional[date] = None


class DebtorCreate(BaseModel):
    """Direct debt entry; merges into the client's open debt at the branch."""
    client_id: str = Field(..., min_length=1)
    branch_id: Optional[str] = None
    amount: MoneyIn
    description: str = ""
    date_returned: date

    @model_validator(mode="after")
    def validate_amount(self):
        if self.amount.usd == 0 and self.amount.uzs == 0:
            raise ValueError("Debt amount must be greater than 0")
        return self


class DebtorPaymentCreate(BaseModel):
    payment: MoneyIn
    payment_type: PaymentType = PaymentType.cash
    next_payment: Optional[NextPayment] = None
    description: str = ""

    @model_validator(mode="after")
    def validate_payment(self):
        if self.payment.usd == 0 and self.payment.uzs == 0:
            raise ValueError("Payment amount must be greater than 0")
        if self.payment_type == PaymentType.debt:
            raise ValueError("A debt cannot be paid with payment_type 'debt'")
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "payment": {"usd": 0, "uzs": 5000},
                "payment_type": "cash",
                "next_payment": {"amount": {"usd": 0, "uzs": 5000}, "due_date": "2026-12-01"},
            }
        }
    )


class DebtorUpdate(BaseModel):
    next_payment: Optional[NextPayment] = None
    description: Optional[str] = None
    date_returned: Optional[date] = None

    model_config = ConfigDict(extra="forbid")


class DebtorClientRef(BaseModel):
    id: str
    first_name: str
    last_name: str
    phone: str

    model_config = ConfigDict(from_attributes=True)


class DebtorResponse(BaseModel):
    id: str
    client_id: str
    branch_id: Optional[str] = None
    order_id: Optional[int] = None
    total_debt: MoneyOut
    paid_amount: MoneyOut
    remaining_debt: MoneyOut
    last_payment: MoneyOut
    last_payment_date: Optional[datetime] = None
    next_payment: MoneyOut
    next_payment_due_date: Optional[date] = None
    due_date: Optional[date] = None
    description: str = ""
    status: DebtorStatus
    created_at: datetime
    updated_at: datetime
    client: Optional[DebtorClientRef] = None

    model_config = ConfigDict(from_attributes=True)


class DebtorListResponse(BaseModel):
    total: int
    debtors: List[DebtorResponse]


class DebtorPaymentResponse(BaseModel):
    id: int
    debtor_id: str
    amount: MoneyOut
    payment_type: PaymentType
    description: str = ""
    paid_at: datetime
    created_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DebtorPaymentListResponse(BaseModel):
    total: int
    payments: List[DebtorPaymentResponse]


class DebtorStatsResponse(BaseModel):
    total_current_debt: MoneyOut
    total_paid: MoneyOut
    status_counts: Dict[str, int]
    total_debtors: int


class OverdueMarkResponse(BaseModel):
    marked: int
    as_of: date


class DebtorDeleteResponse(BaseModel):
    message: str
    reversed_debt: MoneyOut
