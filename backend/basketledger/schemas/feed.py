from pydantic import BaseModel


class FeedIn(BaseModel):
    time: int | None = None  # unix seconds; defaults to the environment clock
    force: bool = False


class FeedOut(BaseModel):
    posted: bool
    feed_time: int
    basket_value: int = 0
    previous_liabilities: int = 0
    delta: int = 0


class CurvePointOut(BaseModel):
    feed_time: int
    accumulated_rate: int
    accruing_principal: int
    delta: int

    class Config:
        from_attributes = True
