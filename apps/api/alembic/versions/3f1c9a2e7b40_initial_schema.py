"""initial_schema

Revision ID: 3f1c9a2e7b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "3f1c9a2e7b40"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("gtin", sa.String(50), nullable=False),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("company", sa.String(200), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("specifications", postgresql.JSONB, nullable=True),
        sa.Column("warranty_months", sa.Integer, nullable=True),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("nft_mint_address", sa.String(100), nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gtin"),
        sa.CheckConstraint(
            "warranty_months IS NULL OR (warranty_months >= 0 AND warranty_months <= 120)",
            name="ck_product_warranty_range",
        ),
    )
    op.create_index("ix_products_company", "products", ["company"])
    op.create_index("ix_products_category", "products", ["category"])

    op.create_table(
        "batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("batch_name", sa.String(100), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("manufacturing_facility", sa.String(200), nullable=False),
        sa.Column("production_line", sa.String(100), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("planned_quantity", sa.Integer, nullable=False),
        sa.Column("produced_quantity", sa.Integer, server_default="0", nullable=False),
        sa.Column("status", sa.String(20), server_default="PLANNED", nullable=False),
        sa.Column("nft_collection_address", sa.String(100), nullable=True),
        sa.Column("nft_collection_explorer_link", sa.Text, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "batch_name", name="uq_batch_per_product"),
        sa.CheckConstraint("planned_quantity >= 1", name="ck_batch_planned_positive"),
        sa.CheckConstraint("produced_quantity >= 0", name="ck_batch_produced_non_negative"),
    )
    op.create_index("ix_batches_product_id", "batches", ["product_id"])
    op.create_index("ix_batches_start_date", "batches", ["start_date"])
    op.create_index("ix_batches_status", "batches", ["status"])

    op.create_table(
        "items",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("serial_number", sa.String(200), nullable=False),
        sa.Column("batch_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("manufacturing_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("manufacturing_operator", sa.String(100), nullable=False),
        sa.Column("quality_status", sa.String(20), server_default="PENDING", nullable=False),
        sa.Column("quality_inspector", sa.String(100), nullable=True),
        sa.Column("quality_inspection_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("quality_notes", sa.Text, nullable=True),
        sa.Column("nft_mint_address", sa.String(100), nullable=True),
        sa.Column("nft_explorer_link", sa.Text, nullable=True),
        sa.Column("nft_metadata_uri", sa.Text, nullable=True),
        sa.Column("current_owner", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), server_default="MANUFACTURED", nullable=False),
        sa.Column("additional_attributes", postgresql.JSONB, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["batch_id"], ["batches.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("serial_number"),
    )
    op.create_index("ix_items_batch_id", "items", ["batch_id"])
    op.create_index("ix_items_quality_status", "items", ["quality_status"])
    op.create_index("ix_items_status", "items", ["status"])
    op.create_index("ix_item_manufacturing_date", "items", ["manufacturing_date"])

    op.create_table(
        "fractional_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("nft_mint_address", sa.String(64), nullable=False),
        sa.Column("share_token_mint", sa.String(64), nullable=False),
        sa.Column("token_name", sa.String(32), nullable=False),
        sa.Column("token_symbol", sa.String(10), nullable=False),
        sa.Column("total_shares", sa.Integer, nullable=False),
        sa.Column("decimals", sa.Integer, server_default="0", nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("metadata_address", sa.String(64), nullable=True),
        sa.Column("metadata_uri", sa.Text, nullable=True),
        sa.Column("creator_address", sa.String(64), nullable=False),
        sa.Column("creator_name", sa.String(200), nullable=False),
        sa.Column("creator_id", sa.String(200), nullable=True),
        sa.Column("explorer_link", sa.Text, nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nft_mint_address"),
        sa.UniqueConstraint("share_token_mint"),
        sa.CheckConstraint("total_shares >= 2", name="ck_fractional_total_shares_min"),
        sa.CheckConstraint("decimals >= 0", name="ck_fractional_decimals_non_negative"),
    )
    op.create_index("ix_fractional_tokens_creator_address", "fractional_tokens", ["creator_address"])
    op.create_index("ix_fractional_token_active", "fractional_tokens", ["is_active"])

    op.create_table(
        "share_transfers",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("signature", sa.String(128), nullable=False),
        sa.Column("share_token_mint", sa.String(64), nullable=False),
        sa.Column("token_name", sa.String(32), nullable=False),
        sa.Column("token_symbol", sa.String(10), nullable=False),
        sa.Column("from_address", sa.String(64), nullable=False),
        sa.Column("from_name", sa.String(200), nullable=True),
        sa.Column("to_address", sa.String(64), nullable=False),
        sa.Column("to_name", sa.String(200), nullable=True),
        sa.Column("to_id", sa.String(200), nullable=True),
        sa.Column("amount", sa.String(40), nullable=False),
        sa.Column("explorer_link", sa.Text, nullable=False),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("transferred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("signature"),
    )
    op.create_index("ix_share_transfers_share_token_mint", "share_transfers", ["share_token_mint"])
    op.create_index("ix_share_transfers_to_address", "share_transfers", ["to_address"])
    op.create_index("ix_share_transfers_transferred_at", "share_transfers", ["transferred_at"])


def downgrade() -> None:
    op.drop_table("share_transfers")
    op.drop_table("fractional_tokens")
    op.drop_table("items")
    op.drop_table("batches")
    op.drop_table("products")
