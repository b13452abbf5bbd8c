from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(78, 0)

def upgrade():
    op.create_table(
        "ledgers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("address", sa.String(length=64), nullable=False),
        sa.Column("token_address", sa.String(length=64), nullable=False),
        sa.Column("lock_period", sa.BigInteger(), nullable=True),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("activated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stake_fee_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unstake_fee_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("dust_balance", AMOUNT, nullable=False, server_default="0"),
        sa.Column("max_supply", AMOUNT, nullable=False, server_default="0"),
        sa.Column("max_interest_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_loss_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_feed_time", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_fee", AMOUNT, nullable=False, server_default="0"),
        sa.Column("total_interest_bearing", AMOUNT, nullable=False, server_default="0"),
        sa.Column("total_shares", AMOUNT, nullable=False, server_default="0"),
        sa.Column("total_principal", AMOUNT, nullable=False, server_default="0"),
        sa.Column("total_interest", AMOUNT, nullable=False, server_default="0"),
        sa.Column("next_token_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_ledgers_name", "ledgers", ["name"], unique=True)
    op.create_unique_constraint("uq_ledgers_address", "ledgers", ["address"])

    op.create_table(
        "basket_assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ledger_id", sa.Integer(), sa.ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("vault_address", sa.String(length=64), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("ledger_id", "vault_address", name="uq_basket_assets_ledger_vault"),
        sa.UniqueConstraint("ledger_id", "position", name="uq_basket_assets_ledger_position"),
    )
    op.create_index("ix_basket_assets_ledger_id", "basket_assets", ["ledger_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=True),
        sa.Column("actor", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_actor", "audit_logs", ["actor"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])

def downgrade():
    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_entity_type", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor", table_name="audit_logs")
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_basket_assets_ledger_id", table_name="basket_assets")
    op.drop_table("basket_assets")

    op.drop_constraint("uq_ledgers_address", "ledgers", type_="unique")
    op.drop_index("ix_ledgers_name", table_name="ledgers")
    op.drop_table("ledgers")
