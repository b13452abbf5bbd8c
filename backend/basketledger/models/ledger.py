from sqlalchemy import Boolean, BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from basketledger.db.base import Base
from basketledger.db.types import Amount


class Ledger(Base):
    __tablename__ = "ledgers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # immutable, fixed at creation
    name: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    kind: Mapped[str] = mapped_column(String(16))
    address: Mapped[str] = mapped_column(String(64), unique=True)
    token_address: Mapped[str] = mapped_column(String(64))
    lock_period: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    schema_version: Mapped[int] = mapped_column(Integer)

    activated: Mapped[bool] = mapped_column(Boolean, default=False)
    paused: Mapped[bool] = mapped_column(Boolean, default=False)

    stake_fee_rate: Mapped[int] = mapped_column(Integer, default=0)
    unstake_fee_rate: Mapped[int] = mapped_column(Integer, default=0)
    dust_balance: Mapped[int] = mapped_column(Amount, default=0)
    max_supply: Mapped[int] = mapped_column(Amount, default=0)
    max_interest_rate: Mapped[int] = mapped_column(Integer, default=0)
    max_loss_rate: Mapped[int] = mapped_column(Integer, default=0)

    last_feed_time: Mapped[int] = mapped_column(BigInteger, default=0)
    total_fee: Mapped[int] = mapped_column(Amount, default=0)

    # open-term
    total_interest_bearing: Mapped[int] = mapped_column(Amount, default=0)
    total_shares: Mapped[int] = mapped_column(Amount, default=0)

    # fixed-term
    total_principal: Mapped[int] = mapped_column(Amount, default=0)
    total_interest: Mapped[int] = mapped_column(Amount, default=0)
    # part of posted deltas no earning certificate took; a shortfall here is
    # charged to every open certificate through settlement_rate
    unallocated_interest: Mapped[int] = mapped_column(Amount, default=0)
    settlement_rate: Mapped[int] = mapped_column(Amount, default=0)
    next_token_id: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
