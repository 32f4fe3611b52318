from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

CURRENCIES = ("usd", "uzs")


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Money:
    """Amount split by currency. Mapped onto ``*_usd`` / ``*_uzs`` column pairs."""

    usd: Decimal = Decimal("0")
    uzs: Decimal = Decimal("0")

    def __post_init__(self):
        object.__setattr__(self, "usd", _to_decimal(self.usd))
        object.__setattr__(self, "uzs", _to_decimal(self.uzs))

    def __composite_values__(self):
        return self.usd, self.uzs

    def __add__(self, other: "Money") -> "Money":
        return Money(self.usd + other.usd, self.uzs + other.uzs)

    def __sub__(self, other: "Money") -> "Money":
        return Money(self.usd - other.usd, self.uzs - other.uzs)

    def __neg__(self) -> "Money":
        return Money(-self.usd, -self.uzs)

    def __mul__(self, factor) -> "Money":
        factor = _to_decimal(factor)
        return Money(self.usd * factor, self.uzs * factor)

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal("0"), Decimal("0"))

    @classmethod
    def of(cls, value: Any) -> "Money":
        """Build from a Money, a dict, a pydantic model or ``None``."""
        if value is None:
            return cls.zero()
        if isinstance(value, Money):
            return value
        if isinstance(value, dict):
            return cls(value.get("usd"), value.get("uzs"))
        return cls(getattr(value, "usd", None), getattr(value, "uzs", None))

    @classmethod
    def in_currency(cls, currency: str, amount) -> "Money":
        currency = currency.lower()
        if currency not in CURRENCIES:
            raise ValueError(f"Unknown currency: {currency}")
        return cls(**{currency: _to_decimal(amount)})

    def is_zero(self) -> bool:
        return self.usd == 0 and self.uzs == 0

    def has_negative(self) -> bool:
        return self.usd < 0 or self.uzs < 0

    def is_positive(self) -> bool:
        """Non-negative in both currencies and above zero in at least one."""
        return not self.has_negative() and not self.is_zero()

    def exceeds(self, limit: "Money") -> bool:
        return self.usd > limit.usd or self.uzs > limit.uzs

    def min(self, other: "Money") -> "Money":
        return Money(min(self.usd, other.usd), min(self.uzs, other.uzs))

    def floor_zero(self) -> "Money":
        return Money(max(self.usd, Decimal("0")), max(self.uzs, Decimal("0")))

    def as_dict(self) -> Dict[str, Decimal]:
        return {"usd": self.usd, "uzs": self.uzs}

    def as_float_dict(self) -> Dict[str, float]:
        return {"usd": float(self.usd), "uzs": float(self.uzs)}

    def describe(self) -> str:
        parts = []
        if self.usd:
            parts.append(f"{self.usd:,.2f} USD")
        if self.uzs:
            parts.append(f"{self.uzs:,.0f} UZS")
        return " + ".join(parts) if parts else "0"


def money_or_none(value: Optional[Any]) -> Optional[Money]:
    return None if value is None else Money.of(value)
