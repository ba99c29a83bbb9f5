"""create event registrations and audit logs

Revision ID: 0002_create_registrations_and_audit
Revises: 0001_create_pricing_tables
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_create_registrations_and_audit"
down_revision = "0001_create_pricing_tables"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "event_registrations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("tier_id", sa.Integer(), sa.ForeignKey("cost_tiers.id"), nullable=True),
        sa.Column("tier_name", sa.String(100), nullable=True),
        sa.Column("registration_date", sa.DateTime(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("CONFIRMED", "CANCELLED", name="registrationstatusenum"),
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            sa.Enum("PENDING", "PAID", "REFUNDED", name="paymentstatusenum"),
            nullable=True,
        ),
        sa.Column(
            "payment_method",
            sa.Enum("PLATFORM", "MANUAL", name="paymentmethodenum"),
            nullable=True,
        ),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("fee_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("net_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("manual_payment_at", sa.DateTime(), nullable=True),
        sa.Column("checked_in", sa.Boolean(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(), nullable=True),
        sa.Column("snapshot_amount_paid", sa.Numeric(10, 2), nullable=True),
        sa.Column("snapshot_platform_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("snapshot_organizer_net", sa.Numeric(10, 2), nullable=True),
        sa.Column("snapshot_is_fee_absorbed", sa.Boolean(), nullable=True),
        sa.Column("snapshot_calculated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_event_registrations_event_id", "event_registrations", ["event_id"])
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.String(128), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("ip", sa.String(50), nullable=True),
        sa.Column("user_agent", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )


def downgrade():
    op.drop_table("audit_logs")
    op.drop_index("ix_event_registrations_event_id", table_name="event_registrations")
    op.drop_table("event_registrations")
    bind = op.get_bind()
    for name in ("paymentmethodenum", "paymentstatusenum", "registrationstatusenum"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
