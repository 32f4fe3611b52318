from datetime import date, datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from autoshop.models.order import PaymentType
from autoshop.models.transaction import RelatedModel, TransactionType
from autoshop.schemas.money import MoneyIn, MoneyOut


class CashMovementCreate(BaseModel):
    """Manual cash-in / cash-out"""
    amount: MoneyIn
    payment_type: PaymentType = PaymentType.cash
    description: str = ""

    @model_validator(mode="after")
    def validate_amount(self):
        if self.amount.usd == 0 and self.amount.uzs == 0:
            raise ValueError("Amount must be greater than 0")
        return self


class TransactionResponse(BaseModel):
    id: int
    type: TransactionType
    amount: MoneyOut
    payment_type: PaymentType
    description: str = ""
    related_model: Optional[RelatedModel] = None
    related_id: Optional[str] = None
    client_id: Optional[str] = None
    branch_id: Optional[str] = None
    created_by: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    transactions: List[TransactionResponse]


class BalanceResponse(BaseModel):
    amount: MoneyOut
    updated_at: Optional[datetime] = None


class CashMovementResponse(BaseModel):
    message: str
    transaction: TransactionResponse
    balance: MoneyOut


class TransactionDeleteResponse(BaseModel):
    message: str
    balance: MoneyOut


class TransactionTotals(BaseModel):
    key: str
    total: MoneyOut
    count: int


class TransactionStatisticsResponse(BaseModel):
    start_date: date
    end_date: date
    branch_id: Optional[str] = None
    by_type: List[TransactionTotals] = Field(default_factory=list)
    by_day: List[TransactionTotals] = Field(default_factory=list)
    by_payment_type: List[TransactionTotals] = Field(default_factory=list)


class ClientTransactionBalanceResponse(BaseModel):
    client_id: str
    total_income: MoneyOut
    total_outcome: MoneyOut
    balance: MoneyOut
    by_type: Dict[str, MoneyOut] = Field(default_factory=dict)
