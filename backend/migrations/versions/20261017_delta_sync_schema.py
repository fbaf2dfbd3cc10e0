"""Delta sync schema: dealers, licenses, sync log, presence, activity

Revision ID: ds001
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "ds001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "dealers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_dealers_is_active", "dealers", ["is_active"], unique=False)

    op.create_table(
        "licenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("license_key", sa.String(length=64), nullable=False),
        sa.Column("dealer_id", sa.String(length=36), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_licenses_license_key", "licenses", ["license_key"], unique=True)
    op.create_index("ix_licenses_dealer_id", "licenses", ["dealer_id"], unique=False)

    op.create_table(
        "sync_sequences",
        sa.Column("dealer_id", sa.String(length=36), primary_key=True),
        sa.Column("last_value", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
    )

    op.create_table(
        "sync_transactions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("dealer_id", sa.String(length=36), nullable=False),
        sa.Column("device_identifier", sa.String(length=128), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column("item_sku", sa.String(length=128), nullable=True),
        sa.Column("item_name", sa.String(length=255), nullable=True),
        sa.Column("quantity_change", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.Column("transaction_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("synced_at", sa.BigInteger(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.UniqueConstraint("dealer_id", "synced_at", name="uq_sync_transactions_dealer_seq"),
    )
    op.create_index("ix_sync_transactions_dealer_id", "sync_transactions", ["dealer_id"], unique=False)
    op.create_index("ix_sync_transactions_action_type", "sync_transactions", ["action_type"], unique=False)
    op.create_index("ix_sync_transactions_dealer_device", "sync_transactions", ["dealer_id", "device_identifier"], unique=False)
    op.create_index("ix_sync_transactions_dealer_time", "sync_transactions", ["dealer_id", "transaction_time"], unique=False)

    op.create_table(
        "sync_devices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dealer_id", sa.String(length=36), nullable=False),
        sa.Column("device_identifier", sa.String(length=128), nullable=False),
        sa.Column("license_id", sa.Integer(), nullable=True),
        sa.Column("device_name", sa.String(length=255), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_ip", sa.String(length=45), nullable=True),
        sa.Column("pending_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.ForeignKeyConstraint(["license_id"], ["licenses.id"]),
        sa.UniqueConstraint("dealer_id", "device_identifier", name="uq_sync_devices_dealer_device"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sync_devices_dealer_id", "sync_devices", ["dealer_id"], unique=False)
    op.create_index("ix_sync_devices_last_sync_at", "sync_devices", ["last_sync_at"], unique=False)

    op.create_table(
        "sync_state",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dealer_id", sa.String(length=36), nullable=False),
        sa.Column("device_identifier", sa.String(length=128), nullable=False),
        sa.Column("last_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.UniqueConstraint("dealer_id", "device_identifier", name="uq_sync_state_dealer_device"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sync_state_dealer_id", "sync_state", ["dealer_id"], unique=False)

    op.create_table(
        "remote_activity_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dealer_id", sa.String(length=36), nullable=False),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_remote_activity_log_dealer_id", "remote_activity_log", ["dealer_id"], unique=False)
    op.create_index("ix_remote_activity_log_action_type", "remote_activity_log", ["action_type"], unique=False)
    op.create_index("ix_remote_activity_log_created_at", "remote_activity_log", ["created_at"], unique=False)
    op.create_index("ix_remote_activity_dealer_created", "remote_activity_log", ["dealer_id", "created_at"], unique=False)


def downgrade():
    op.drop_table("remote_activity_log")
    op.drop_table("sync_state")
    op.drop_table("sync_devices")
    op.drop_table("sync_transactions")
    op.drop_table("sync_sequences")
    op.drop_table("licenses")
    op.drop_table("dealers")
