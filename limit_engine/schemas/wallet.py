from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class WalletCreate(BaseModel):
    private_key: str = Field(..., min_length=64, max_length=66, repr=False)


class WalletOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    created_at: datetime


class BalanceOut(BaseModel):
    address: str
    token: str
    balance: str
