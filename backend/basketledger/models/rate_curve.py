from sqlalchemy import BigInteger, Integer, DateTime, func, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from basketledger.db.base import Base
from basketledger.db.types import Amount

class RateCurvePoint(Base):
    __tablename__ = "rate_curve_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(ForeignKey("ledgers.id", ondelete="CASCADE"), index=True)

    feed_time: Mapped[int] = mapped_column(BigInteger, index=True)
    accumulated_rate: Mapped[int] = mapped_column(Amount)
    accruing_principal: Mapped[int] = mapped_column(Amount, default=0)
    delta: Mapped[int] = mapped_column(Amount, default=0)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ledger_id", "feed_time", name="uq_rate_curve_ledger_time"),
    )


class PrincipalSchedule(Base):
    __tablename__ = "principal_schedule"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(ForeignKey("ledgers.id", ondelete="CASCADE"), index=True)

    start_date: Mapped[int] = mapped_column(BigInteger, index=True)
    principal: Mapped[int] = mapped_column(Amount, default=0)

    __table_args__ = (
        UniqueConstraint("ledger_id", "start_date", name="uq_principal_schedule_ledger_start"),
    )
