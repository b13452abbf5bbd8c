from sqlalchemy import BigInteger, Integer, DateTime, func, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from basketledger.db.base import Base
from basketledger.db.types import Amount

class Certificate(Base):
    __tablename__ = "certificates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(ForeignKey("ledgers.id", ondelete="CASCADE"), index=True)
    token_id: Mapped[int] = mapped_column(Integer)

    owner: Mapped[str] = mapped_column(String(64), index=True)
    principal: Mapped[int] = mapped_column(Amount)
    start_date: Mapped[int] = mapped_column(BigInteger, index=True)
    maturity_date: Mapped[int] = mapped_column(BigInteger, index=True)
    status: Mapped[str] = mapped_column(String(16), default="active")
    settlement_base: Mapped[int] = mapped_column(Amount, default=0)

    # filled in on unstake
    interest_paid: Mapped[int | None] = mapped_column(Amount, nullable=True)
    closed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ledger_id", "token_id", name="uq_certificates_ledger_token"),
    )
