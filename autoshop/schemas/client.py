from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import date, datetime

from autoshop.schemas.money import MoneyOut


class ClientBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=5, max_length=20)
    birthday: Optional[date] = None
    telegram: Optional[str] = Field(None, max_length=100)
    is_vip: bool = False
    branch_id: Optional[str] = None
    notes: str = ""


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    birthday: Optional[date] = None
    telegram: Optional[str] = Field(None, max_length=100)
    is_vip: Optional[bool] = None
    branch_id: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ClientResponse(ClientBase):
    id: str
    debt: MoneyOut
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClientListResponse(BaseModel):
    total: int
    clients: List[ClientResponse]
