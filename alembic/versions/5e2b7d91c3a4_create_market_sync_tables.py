"""create market sync tables

Revision ID: 5e2b7d91c3a4
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "5e2b7d91c3a4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade(engine_name: str = "") -> None:
    globals()[f"upgrade_{engine_name}"]()


def downgrade(engine_name: str = "") -> None:
    globals()[f"downgrade_{engine_name}"]()


def upgrade_catalog() -> None:
    # 카탈로그 테이블은 PIM 쪽에서 관리
    pass


def downgrade_catalog() -> None:
    pass


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _jsonb(name: str) -> sa.Column:
    return sa.Column(name, postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb"))


def upgrade_market() -> None:
    op.create_table(
        "sync_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("channel", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("store_url", sa.Text(), nullable=True),
        _jsonb("settings"),
        *_timestamps(),
        sa.UniqueConstraint("channel", "name", name="uq_sync_accounts_channel_name"),
    )

    op.create_table(
        "sync_statuses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sync_account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sync_accounts.id"), nullable=False),
        sa.Column("external_product_id", sa.Text(), nullable=True),
        sa.Column("external_variant_id", sa.Text(), nullable=True),
        sa.Column("sync_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("health_score", sa.Integer(), nullable=True),
        _jsonb("metadata"),
        *_timestamps(),
        sa.UniqueConstraint("product_id", "sync_account_id", name="uq_sync_statuses_product_account"),
    )

    op.create_table(
        "marketplace_links",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_kind", sa.Text(), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sync_account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sync_accounts.id"), nullable=False),
        sa.Column("parent_link_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("marketplace_links.id"), nullable=True),
        sa.Column("internal_sku", sa.Text(), nullable=False, server_default="NO-SKU"),
        sa.Column("external_sku", sa.Text(), nullable=True),
        sa.Column("external_product_id", sa.Text(), nullable=True),
        sa.Column("external_variant_id", sa.Text(), nullable=True),
        sa.Column("link_level", sa.Text(), nullable=False, server_default="product"),
        sa.Column("link_status", sa.Text(), nullable=False, server_default="pending"),
        _jsonb("marketplace_data"),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("linked_by", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_marketplace_links_product_account", "marketplace_links", ["product_id", "sync_account_id"])
    op.create_index("ix_marketplace_links_owner", "marketplace_links", ["owner_kind", "owner_id"])

    op.create_table(
        "sync_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("sync_account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sync_accounts.id"), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("variant_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        _jsonb("details"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_sync_logs_product_account", "sync_logs", ["product_id", "sync_account_id"])


def downgrade_market() -> None:
    op.drop_index("ix_sync_logs_product_account", table_name="sync_logs")
    op.drop_table("sync_logs")
    op.drop_index("ix_marketplace_links_owner", table_name="marketplace_links")
    op.drop_index("ix_marketplace_links_product_account", table_name="marketplace_links")
    op.drop_table("marketplace_links")
    op.drop_table("sync_statuses")
    op.drop_table("sync_accounts")
