from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Direction = Literal["BUY", "SELL"]
OrderStatus = Literal["ACTIVE", "FILLED", "CANCELLED"]


class OrderCreate(BaseModel):
    wallet_address: str = Field(..., min_length=42, max_length=42)
    direction: Direction
    token_in: str = Field(..., min_length=42, max_length=42)
    token_out: str = Field(..., min_length=42, max_length=42)
    amount: int = Field(..., gt=0, description="Base units of token_in")
    trigger_price: Decimal = Field(..., gt=0)
    slippage: Decimal = Field(Decimal("0.01"), ge=0, lt=1, description="Fraction, 0.01 = 1%")
    expiry: Optional[str] = Field(None, description="Relative expiry: 30m, 1h, 4h, 1d, 4d or none")
    expiry_at: Optional[datetime] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    wallet_address: str
    direction: Direction
    token_in: str
    token_out: str
    amount: str
    trigger_price: Decimal
    slippage: Decimal
    status: OrderStatus
    expiry_at: Optional[datetime]
    tx_hash: Optional[str]
    executed_price: Optional[Decimal]
    needs_review: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("amount", mode="before")
    @classmethod
    def amount_as_text(cls, v):
        # base units overflow JSON number precision in most clients
        return str(v)

    @field_validator("direction", "status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


class CancelResult(BaseModel):
    order_id: int
    cancelled: bool
    status: OrderStatus
    detail: str
