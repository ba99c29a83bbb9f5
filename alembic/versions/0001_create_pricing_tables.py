"""create organizers, financial settings, events and cost tiers

Revision ID: 0001_create_pricing_tables
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_create_pricing_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "organizers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("contact_email", sa.String(120), nullable=True),
        sa.Column("bank_name", sa.String(100), nullable=True),
        sa.Column("account_holder", sa.String(150), nullable=True),
        sa.Column("clabe", sa.String(18), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_organizers_id", "organizers", ["id"])
    op.create_table(
        "financial_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("organizers.id"), nullable=True, unique=True),
        sa.Column("commission_rate", sa.Numeric(6, 3), nullable=False),
        sa.Column("gateway_rate", sa.Numeric(6, 3), nullable=False),
        sa.Column("gateway_fixed_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 3), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("organizers.id"), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(), nullable=True),
        sa.Column("cost_type", sa.Enum("FREE", "PAID", name="costtypeenum"), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="MXN"),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "cost_tiers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("includes", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("absorb_fee", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("net_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("limit", sa.Integer(), nullable=True),
        sa.Column("sold_count", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade():
    op.drop_table("cost_tiers")
    op.drop_table("events")
    op.drop_table("financial_settings")
    op.drop_index("ix_organizers_id", table_name="organizers")
    op.drop_table("organizers")
    sa.Enum(name="costtypeenum").drop(op.get_bind(), checkfirst=True)
