"""Initialize schema with stores, popup_configs, subscribers

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial tables."""
    # stores
    op.create_table(
        "stores",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("shopify_url", sa.Text(), nullable=False),
        sa.Column("shopify_store_name", sa.String(255)),
        sa.Column("custom_domain", sa.Text()),
        sa.Column("shopify_access_token", sa.Text()),
        sa.Column("is_connected", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("active_script_version", sa.Text()),
        sa.Column("active_script_timestamp", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        # Version and timestamp are written as a pair
        sa.CheckConstraint(
            "(active_script_version IS NULL) = (active_script_timestamp IS NULL)",
            name="ck_stores_active_script_pair",
        ),
    )

    # popup_configs
    op.create_table(
        "popup_configs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "store_id",
            sa.String(36),
            sa.ForeignKey("stores.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            index=True,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("subtitle", sa.Text(), nullable=False),
        sa.Column("button_text", sa.String(100), nullable=False, server_default="SUBMIT"),
        sa.Column("fields", postgresql.JSONB(), nullable=False),
        sa.Column("email_validation", postgresql.JSONB(), nullable=False),
        sa.Column("discount_code", sa.String(100), nullable=False, server_default="WELCOME15"),
        sa.Column("discount_percentage", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("display_trigger", sa.String(50), nullable=False, server_default="immediate"),
        sa.Column("animation", sa.String(50), nullable=False, server_default="slide-in"),
        sa.Column(
            "show_exit_intent_if_not_subscribed",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "suppress_after_subscription",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
    )

    # subscribers
    op.create_table(
        "subscribers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "store_id",
            sa.String(36),
            sa.ForeignKey("stores.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("email", sa.String(320), nullable=False, index=True),
        sa.Column("name", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("company", sa.String(255)),
        sa.Column("address", sa.Text()),
        sa.Column("session_id", sa.String(100)),
        sa.Column("discount_code_sent", sa.String(100)),
        sa.Column("discount_code_used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("subscribed_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("unsubscribed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("store_id", "email", name="uq_subscribers_store_email"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("subscribers")
    op.drop_table("popup_configs")
    op.drop_table("stores")
