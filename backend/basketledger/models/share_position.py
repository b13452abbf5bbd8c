from sqlalchemy import Integer, DateTime, func, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from basketledger.db.base import Base
from basketledger.db.types import Amount

class SharePosition(Base):
    __tablename__ = "share_positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(ForeignKey("ledgers.id", ondelete="CASCADE"), index=True)

    owner: Mapped[str] = mapped_column(String(64), index=True)
    shares: Mapped[int] = mapped_column(Amount, default=0)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("ledger_id", "owner", name="uq_share_positions_ledger_owner"),
    )
