from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Literal

LedgerKind = Literal["open_term", "fixed_term"]


class BasketAssetIn(BaseModel):
    vault: str
    weight: int = Field(gt=0)


class BasketAssetOut(BaseModel):
    vault: str
    weight: int

    class Config:
        from_attributes = True


class LedgerCreate(BaseModel):
    name: str
    kind: LedgerKind
    lock_period: int | None = None  # seconds, whole days; fixed-term only
    stake_fee_rate: int = 0
    unstake_fee_rate: int = 0
    dust_balance: int = 0
    max_supply: int
    max_interest_rate: int | None = None
    max_loss_rate: int | None = None
    basket: list[BasketAssetIn]

    @field_validator("name")
    @classmethod
    def name_trim(cls, v: str):
        v = (v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v


class LedgerOut(BaseModel):
    id: int
    name: str
    kind: LedgerKind
    address: str
    token_address: str
    lock_period: int | None
    schema_version: int
    activated: bool
    paused: bool

    stake_fee_rate: int
    unstake_fee_rate: int
    dust_balance: int
    max_supply: int
    max_interest_rate: int
    max_loss_rate: int

    last_feed_time: int
    total_fee: int
    total_interest_bearing: int
    total_shares: int
    total_principal: int
    total_interest: int
    unallocated_interest: int = 0

    basket: list[BasketAssetOut] = []
    basket_value: int | None = None
    created_at: datetime | None = None


class FeeRatesUpdate(BaseModel):
    stake_fee_rate: int
    unstake_fee_rate: int


class LimitsUpdate(BaseModel):
    dust_balance: int
    max_supply: int


class CollectFeeIn(BaseModel):
    recipient: str


class CollectFeeOut(BaseModel):
    recipient: str
    amount: int
