from sqlalchemy import Integer, DateTime, func, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from basketledger.db.base import Base

class BasketAsset(Base):
    __tablename__ = "basket_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ledger_id: Mapped[int] = mapped_column(ForeignKey("ledgers.id", ondelete="CASCADE"), index=True)

    position: Mapped[int] = mapped_column(Integer)
    vault_address: Mapped[str] = mapped_column(String(64))
    weight: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ledger_id", "vault_address", name="uq_basket_assets_ledger_vault"),
        UniqueConstraint("ledger_id", "position", name="uq_basket_assets_ledger_position"),
    )
