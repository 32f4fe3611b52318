from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field, field_validator


class MoneyIn(BaseModel):
    """Amount split by currency, as accepted in requests."""
    usd: Decimal = Field(default=Decimal("0"), ge=0)
    uzs: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("usd", "uzs")
    @classmethod
    def validate_precision(cls, v):
        """Ensure amounts have at most 2 decimal places"""
        if v.as_tuple().exponent < -2:
            raise ValueError("Amount must have at most 2 decimal places")
        return v

    model_config = ConfigDict(json_schema_extra={"example": {"usd": 0, "uzs": 30000}})


class MoneyOut(BaseModel):
    usd: Decimal = Decimal("0")
    uzs: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)
