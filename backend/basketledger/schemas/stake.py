from pydantic import BaseModel, Field, model_validator
from typing import Optional


class StakeIn(BaseModel):
    amount: int = Field(gt=0)
    beneficiary: Optional[str] = None


class StakeOut(BaseModel):
    # open-term
    shares: Optional[int] = None
    net: Optional[int] = None
    # fixed-term
    token_id: Optional[int] = None
    principal: Optional[int] = None
    start_date: Optional[int] = None
    maturity_date: Optional[int] = None

    fee: int = 0


class UnstakeIn(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0)
    token_id: Optional[int] = None
    owner: Optional[str] = None

    @model_validator(mode="after")
    def one_target(self):
        if (self.amount is None) == (self.token_id is None):
            raise ValueError("exactly one of amount or token_id is required")
        return self


class UnstakeOut(BaseModel):
    amount: int
    fee: int
    paid: int
    shares: Optional[int] = None
    token_id: Optional[int] = None
    interest: Optional[int] = None


class PositionOut(BaseModel):
    owner: str
    shares: int
    value: int


class CertificateOut(BaseModel):
    token_id: int
    owner: str
    principal: int
    interest: int
    start_date: int
    maturity_date: int
    status: str
    redeemable: bool
