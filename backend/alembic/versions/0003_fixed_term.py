"""fixed-term certificates and rate curve

Revision ID: 0003_fixed_term
Revises: 0002_open_term_positions
Create Date: 2026-10-14
"""

from alembic import op
import sqlalchemy as sa

revision = "0003_fixed_term"
down_revision = "0002_open_term_positions"
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(78, 0)


def upgrade():
    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ledger_id", sa.Integer(), sa.ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_id", sa.Integer(), nullable=False),
        sa.Column("owner", sa.String(length=64), nullable=False),
        sa.Column("principal", AMOUNT, nullable=False),
        sa.Column("start_date", sa.BigInteger(), nullable=False),
        sa.Column("maturity_date", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("interest_paid", AMOUNT, nullable=True),
        sa.Column("closed_at", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("ledger_id", "token_id", name="uq_certificates_ledger_token"),
    )
    op.create_index("ix_certificates_ledger_id", "certificates", ["ledger_id"])
    op.create_index("ix_certificates_owner", "certificates", ["owner"])
    op.create_index("ix_certificates_start_date", "certificates", ["start_date"])
    op.create_index("ix_certificates_maturity_date", "certificates", ["maturity_date"])

    op.create_table(
        "rate_curve_points",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ledger_id", sa.Integer(), sa.ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("feed_time", sa.BigInteger(), nullable=False),
        sa.Column("accumulated_rate", AMOUNT, nullable=False),
        sa.Column("accruing_principal", AMOUNT, nullable=False, server_default="0"),
        sa.Column("delta", AMOUNT, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("ledger_id", "feed_time", name="uq_rate_curve_ledger_time"),
    )
    op.create_index("ix_rate_curve_points_ledger_id", "rate_curve_points", ["ledger_id"])
    op.create_index("ix_rate_curve_points_feed_time", "rate_curve_points", ["feed_time"])

    op.create_table(
        "principal_schedule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ledger_id", sa.Integer(), sa.ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_date", sa.BigInteger(), nullable=False),
        sa.Column("principal", AMOUNT, nullable=False, server_default="0"),
        sa.UniqueConstraint("ledger_id", "start_date", name="uq_principal_schedule_ledger_start"),
    )
    op.create_index("ix_principal_schedule_ledger_id", "principal_schedule", ["ledger_id"])
    op.create_index("ix_principal_schedule_start_date", "principal_schedule", ["start_date"])


def downgrade():
    op.drop_index("ix_principal_schedule_start_date", table_name="principal_schedule")
    op.drop_index("ix_principal_schedule_ledger_id", table_name="principal_schedule")
    op.drop_table("principal_schedule")

    op.drop_index("ix_rate_curve_points_feed_time", table_name="rate_curve_points")
    op.drop_index("ix_rate_curve_points_ledger_id", table_name="rate_curve_points")
    op.drop_table("rate_curve_points")

    op.drop_index("ix_certificates_maturity_date", table_name="certificates")
    op.drop_index("ix_certificates_start_date", table_name="certificates")
    op.drop_index("ix_certificates_owner", table_name="certificates")
    op.drop_index("ix_certificates_ledger_id", table_name="certificates")
    op.drop_table("certificates")
