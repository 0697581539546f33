"""initial models: product, shoporder, paymentrecord, paymentstatusevent

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel  # noqa: F401


revision: str = "0001_initial_models"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "product",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False, server_default=""),
        sa.Column("images", sa.JSON(), nullable=True),
        sa.Column("emoji", sa.String(), nullable=False, server_default="📦"),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("sku", sa.String(), nullable=False, server_default=""),
        sa.Column("in_stock", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_product_category", "product", ["category"])
    op.create_index("ix_product_in_stock", "product", ["in_stock"])

    op.create_table(
        "shoporder",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("user_first_name", sa.String(), nullable=True),
        sa.Column("user_last_name", sa.String(), nullable=True),
        sa.Column("user_username", sa.String(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=True),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_shoporder_user_id", "shoporder", ["user_id"])
    op.create_index("ix_shoporder_status", "shoporder", ["status"])
    op.create_index("ix_shoporder_created_at", "shoporder", ["created_at"])

    op.create_table(
        "paymentrecord",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("shoporder.id"), nullable=False),
        sa.Column("gateway_name", sa.String(), nullable=False, server_default="tinkoff"),
        sa.Column("gateway_payment_id", sa.String(), nullable=True),
        sa.Column("order_reference", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="RUB"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("payer_email", sa.String(), nullable=True),
        sa.Column("payer_phone", sa.String(), nullable=True),
        sa.Column("payment_url", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_paymentrecord_order_id", "paymentrecord", ["order_id"])
    op.create_index("ix_paymentrecord_gateway_name", "paymentrecord", ["gateway_name"])
    op.create_index("ix_paymentrecord_gateway_payment_id", "paymentrecord", ["gateway_payment_id"])
    op.create_index("ix_paymentrecord_order_reference", "paymentrecord", ["order_reference"], unique=True)
    op.create_index("ix_paymentrecord_status", "paymentrecord", ["status"])
    op.create_index("ix_paymentrecord_created_at", "paymentrecord", ["created_at"])

    op.create_table(
        "paymentstatusevent",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payment_record_id", sa.Integer(), sa.ForeignKey("paymentrecord.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_paymentstatusevent_payment_record_id", "paymentstatusevent", ["payment_record_id"])


def downgrade() -> None:
    op.drop_table("paymentstatusevent")
    op.drop_table("paymentrecord")
    op.drop_table("shoporder")
    op.drop_table("product")
