"""fixed-term loss settlement and per-ledger audit rows

Revision ID: 0004_loss_settlement
Revises: 0003_fixed_term
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0004_loss_settlement"
down_revision = "0003_fixed_term"
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(78, 0)


def upgrade():
    op.add_column("ledgers", sa.Column("unallocated_interest", AMOUNT, nullable=False, server_default="0"))
    op.add_column("ledgers", sa.Column("settlement_rate", AMOUNT, nullable=False, server_default="0"))
    op.add_column("certificates", sa.Column("settlement_base", AMOUNT, nullable=False, server_default="0"))

    op.add_column("audit_logs", sa.Column("ledger_id", sa.Integer(), nullable=True))
    op.create_index("ix_audit_logs_ledger_id", "audit_logs", ["ledger_id"], unique=False)
    op.create_index("ix_audit_logs_ledger_action", "audit_logs", ["ledger_id", "action"], unique=False)
    op.execute("UPDATE audit_logs SET ledger_id = entity_id WHERE entity_type = 'ledger'")
    op.execute(
        "UPDATE audit_logs SET ledger_id = "
        "(SELECT certificates.ledger_id FROM certificates WHERE certificates.id = audit_logs.entity_id) "
        "WHERE entity_type = 'certificate'"
    )
    op.execute("UPDATE ledgers SET schema_version = 4")


def downgrade():
    op.execute("UPDATE ledgers SET schema_version = 3")
    op.drop_index("ix_audit_logs_ledger_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_ledger_id", table_name="audit_logs")
    op.drop_column("audit_logs", "ledger_id")

    op.drop_column("certificates", "settlement_base")
    op.drop_column("ledgers", "settlement_rate")
    op.drop_column("ledgers", "unallocated_interest")
