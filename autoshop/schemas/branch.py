from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


class BranchBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class BranchCreate(BranchBase):
    pass


class BranchResponse(BranchBase):
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BranchListResponse(BaseModel):
    total: int
    branches: List[BranchResponse]
