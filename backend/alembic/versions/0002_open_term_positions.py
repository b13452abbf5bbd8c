"""open-term share positions

Revision ID: 0002_open_term_positions
Revises: 0001_init
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa

revision = "0002_open_term_positions"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "share_positions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ledger_id", sa.Integer(), sa.ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner", sa.String(length=64), nullable=False),
        sa.Column("shares", sa.Numeric(78, 0), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("ledger_id", "owner", name="uq_share_positions_ledger_owner"),
    )
    op.create_index("ix_share_positions_ledger_id", "share_positions", ["ledger_id"])
    op.create_index("ix_share_positions_owner", "share_positions", ["owner"])


def downgrade():
    op.drop_index("ix_share_positions_owner", table_name="share_positions")
    op.drop_index("ix_share_positions_ledger_id", table_name="share_positions")
    op.drop_table("share_positions")
