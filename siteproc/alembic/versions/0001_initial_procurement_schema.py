"""initial procurement schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy stocke le NOM du membre (ex: "pending"), pas sa valeur
ROLE = sa.Enum("admin", "owner", "engineer", "accountant", name="role")
PRIORITY = sa.Enum("normal", "high", name="priority")
REQUEST_STATUS = sa.Enum(
    "submitted",
    "pending",
    "approved",
    "rejected",
    "partially_approved",
    "ordered",
    "partially_delivered",
    "delivered",
    name="request_status",
)
MATERIAL_STATUS = sa.Enum("pending", "approved", "rejected", name="material_status")
RESOURCE_TYPE = sa.Enum("material", "labour", name="resource_type")
RATE_ESTIMATE_TYPE = sa.Enum("engineer_estimate", "market_rate", "tender_rate", name="rate_estimate_type")
PO_STATUS = sa.Enum("open", "closed", name="po_status")
DELIVERY_CONDITION = sa.Enum("good", "damaged", "partial_damage", "other", name="delivery_condition")

TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("owner_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("active", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "sites",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("project_id", sa.BigInteger(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("location", sa.String(255)),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("project_id", "name", name="uq_site_project_name"),
    )
    op.create_index("ix_sites_project_id", "sites", ["project_id"])

    op.create_table(
        "requests",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("project_id", sa.BigInteger(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("site_id", sa.BigInteger(), sa.ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("planned_start_date", TS, nullable=False),
        sa.Column("planned_end_date", TS, nullable=False),
        sa.Column("emergency_flag", sa.Boolean(), nullable=False),
        sa.Column("priority", PRIORITY, nullable=False),
        sa.Column("status", REQUEST_STATUS, nullable=False),
        sa.Column("additional_details", sa.Text()),
        sa.Column("boq_reference_code", sa.String(50), nullable=False, unique=True),
        sa.Column("is_duplicate_flagged", sa.Boolean(), nullable=False),
        sa.Column("duplicate_explanation", sa.Text()),
        sa.Column(
            "duplicate_of_request_id",
            sa.BigInteger(),
            sa.ForeignKey("requests.id", ondelete="SET NULL"),
        ),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("planned_start_date < planned_end_date", name="ck_request_window_order"),
    )
    op.create_index("ix_requests_project_id", "requests", ["project_id"])
    op.create_index("ix_requests_site_window", "requests", ["site_id", "planned_start_date", "planned_end_date"])

    op.create_table(
        "materials",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("request_id", sa.BigInteger(), sa.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(15, 3), nullable=False),
        sa.Column("measurement_unit", sa.String(20)),
        sa.Column("rate_estimate", sa.Numeric(18, 2)),
        sa.Column("rate_estimate_type", RATE_ESTIMATE_TYPE, nullable=False),
        sa.Column("resource_type", RESOURCE_TYPE, nullable=False),
        sa.Column("status", MATERIAL_STATUS, nullable=False),
        sa.Column("comment", sa.Text()),
        sa.Column("revision_number", sa.Integer(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_material_qty_pos"),
        sa.CheckConstraint("revision_number >= 1", name="ck_material_revision_pos"),
    )
    op.create_index("ix_materials_request_id", "materials", ["request_id"])

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("po_number", sa.String(50), nullable=False, unique=True),
        sa.Column("project_id", sa.BigInteger(), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("site_id", sa.BigInteger(), sa.ForeignKey("sites.id", ondelete="SET NULL")),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", PO_STATUS, nullable=False),
        sa.Column("vendor_name", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_purchase_orders_project_id", "purchase_orders", ["project_id"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("request_id", sa.BigInteger(), sa.ForeignKey("requests.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("material_display_name", sa.String(255), nullable=False),
        sa.Column("ordered_qty", sa.Numeric(15, 3), nullable=False),
        sa.Column("unit", sa.String(50), nullable=False),
        sa.Column("unit_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(15, 2), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("ordered_qty > 0", name="ck_po_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_item_unit_price_nonneg"),
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"])
    op.create_index("ix_purchase_order_items_request_id", "purchase_order_items", ["request_id"])

    op.create_table(
        "deliveries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("received_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("delivered_date", TS, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_deliveries_purchase_order_id", "deliveries", ["purchase_order_id"])

    op.create_table(
        "delivery_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("delivery_id", sa.BigInteger(), sa.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "purchase_order_item_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_order_items.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity_delivered", sa.Numeric(15, 3), nullable=False),
        sa.Column("condition", DELIVERY_CONDITION, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("quantity_delivered > 0", name="ck_delivery_item_qty_pos"),
    )
    op.create_index("ix_delivery_items_delivery_id", "delivery_items", ["delivery_id"])
    op.create_index("ix_delivery_items_purchase_order_item_id", "delivery_items", ["purchase_order_item_id"])

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("doc_type", sa.String(16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("current_value", sa.Integer(), nullable=False),
        sa.UniqueConstraint("doc_type", "year", name="uq_document_sequence_type_year"),
        sa.CheckConstraint("current_value >= 0", name="ck_document_sequence_nonneg"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("actor_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("meta", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_entity", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("document_sequences")
    op.drop_table("delivery_items")
    op.drop_table("deliveries")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("materials")
    op.drop_table("requests")
    op.drop_table("sites")
    op.drop_table("projects")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        DELIVERY_CONDITION,
        PO_STATUS,
        RATE_ESTIMATE_TYPE,
        RESOURCE_TYPE,
        MATERIAL_STATUS,
        REQUEST_STATUS,
        PRIORITY,
        ROLE,
    ):
        enum_type.drop(bind, checkfirst=True)
