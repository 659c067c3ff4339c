"""create fulfillment tables

Revision ID: 7c1e4b9a2d10
Revises:
Create Date: 2026-10-17 09:12:40.512233

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '7c1e4b9a2d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("provider", sa.String(), nullable=False, server_default="dodo"),
        sa.Column("file_path", sa.String(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="USD"),
        sa.Column("affiliate_rate", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_products_external_id", "products", ["external_id"], unique=True)

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("provider_order_id", sa.String(), nullable=False),
        sa.Column("provider_checkout_id", sa.String(), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="USD"),
        sa.Column("fulfilled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("referral_code", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_purchases_provider_order_id", "purchases", ["provider_order_id"])
    # webhook idempotency key
    op.create_index(
        "ix_purchases_provider_checkout_id", "purchases", ["provider_checkout_id"], unique=True
    )

    op.create_table(
        "download_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("token", sa.String(), nullable=True),
        sa.Column("checkout_id", sa.String(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("file_path", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_download_tokens_token", "download_tokens", ["token"], unique=True)
    op.create_index(
        "ix_download_tokens_checkout_id", "download_tokens", ["checkout_id"], unique=True
    )
    op.create_index("ix_download_tokens_purchase_id", "download_tokens", ["purchase_id"])

    op.create_table(
        "affiliates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_affiliates_code", "affiliates", ["code"], unique=True)

    op.create_table(
        "affiliate_commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("affiliate_id", sa.Integer(), sa.ForeignKey("affiliates.id"), nullable=False),
        sa.Column("affiliate_name", sa.String(), nullable=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchases.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("referral_code", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "affiliate_id", "purchase_id", name="uq_commission_affiliate_purchase"
        ),
    )
    op.create_index(
        "ix_affiliate_commissions_affiliate_id", "affiliate_commissions", ["affiliate_id"]
    )
    op.create_index(
        "ix_affiliate_commissions_purchase_id", "affiliate_commissions", ["purchase_id"]
    )


def downgrade():
    op.drop_table("affiliate_commissions")
    op.drop_table("affiliates")
    op.drop_table("download_tokens")
    op.drop_table("purchases")
    op.drop_table("products")
