"""Initial schema — orders, containers and consignments.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
    python -m app.cli seed-eta
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(), server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    # ── Orders ───────────────────────────────────────────────

    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_ref", sa.String(100), nullable=False),
        sa.Column("rgl_booking_number", sa.String(50)),
        sa.Column("status", sa.String(30), server_default="Created"),
        sa.Column("sender_type", sa.String(20), server_default="sender"),
        sa.Column("point_of_origin", sa.String(255)),
        sa.Column("place_of_loading", sa.String(255), nullable=False),
        sa.Column("final_destination", sa.String(255), nullable=False),
        sa.Column("place_of_delivery", sa.String(255), nullable=False),
        sa.Column("order_remarks", sa.Text()),
        sa.Column("attachments", sa.JSON(), server_default="[]"),
        sa.Column("total_assigned_qty", sa.Integer(), server_default="0"),
        sa.Column("created_by", sa.String(100)),
        sa.Column("updated_by", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_orders_booking_ref", "orders", ["booking_ref"], unique=True)
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "senders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_name", sa.String(255), nullable=False),
        sa.Column("sender_contact", sa.String(50)),
        sa.Column("sender_address", sa.Text()),
        sa.Column("sender_email", sa.String(255)),
        sa.Column("sender_ref", sa.String(100)),
        sa.Column("sender_remarks", sa.Text()),
        *_timestamps(updated=False),
    )
    op.create_index("ix_senders_order_id", "senders", ["order_id"], unique=True)

    op.create_table(
        "receivers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("party_seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("receiver_name", sa.String(255), nullable=False),
        sa.Column("receiver_contact", sa.String(50)),
        sa.Column("receiver_address", sa.Text()),
        sa.Column("receiver_email", sa.String(255)),
        sa.Column("eta", sa.Date()),
        sa.Column("etd", sa.Date()),
        sa.Column("full_partial", sa.String(10), server_default="full"),
        sa.Column("total_number", sa.Integer(), server_default="0"),
        sa.Column("total_weight", sa.Float(), server_default="0"),
        sa.Column("qty_delivered", sa.Integer(), server_default="0"),
        sa.Column("status", sa.String(30), server_default="Created"),
        sa.Column("remarks", sa.Text()),
        sa.Column("containers", sa.JSON(), server_default="[]"),
        *_timestamps(),
    )
    op.create_index("ix_receivers_order_id", "receivers", ["order_id"])
    op.create_index("ix_receivers_status", "receivers", ["status"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("receiver_id", sa.String(36),
                  sa.ForeignKey("receivers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("party_seq", sa.Integer(), nullable=False),
        sa.Column("item_seq", sa.Integer(), nullable=False),
        sa.Column("item_ref", sa.String(50), nullable=False),
        sa.Column("category", sa.String(100)),
        sa.Column("subcategory", sa.String(100)),
        sa.Column("type", sa.String(100)),
        sa.Column("pickup_location", sa.Text()),
        sa.Column("delivery_address", sa.Text()),
        sa.Column("total_number", sa.Integer(), server_default="0"),
        sa.Column("weight", sa.Float(), server_default="0"),
        sa.Column("assigned_qty", sa.Integer(), server_default="0"),
        *_timestamps(updated=False),
    )
    op.create_index("ix_order_items_receiver_id", "order_items", ["receiver_id"])

    op.create_table(
        "transport_details",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_id", sa.String(36),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("transport_mode", sa.String(20), nullable=False),
        sa.Column("drop_off_location", sa.String(255)),
        sa.Column("drop_off_date", sa.Date()),
        sa.Column("driver_name", sa.String(255)),
        sa.Column("driver_contact", sa.String(50)),
        sa.Column("driver_nic", sa.String(50)),
        sa.Column("truck_number", sa.String(50)),
        sa.Column("collection_address", sa.Text()),
        sa.Column("collection_date", sa.Date()),
        sa.Column("third_party_company", sa.String(255)),
        sa.Column("third_party_contact", sa.String(50)),
        sa.Column("gate_pass_number", sa.String(100)),
        sa.Column("clearing_agent", sa.String(255)),
        sa.Column("associated_containers", sa.JSON(), server_default="[]"),
        sa.Column("remarks", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_transport_details_order_id", "transport_details", ["order_id"], unique=True)

    op.create_table(
        "order_tracking_events",
        sa.Column("sequence", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.String(36),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("receiver_id", sa.String(36)),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("actor", sa.String(100)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_order_tracking_events_order_id", "order_tracking_events", ["order_id"])
    op.create_index("ix_order_tracking_events_receiver_id", "order_tracking_events", ["receiver_id"])

    # ── Containers ───────────────────────────────────────────

    op.create_table(
        "containers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_number", sa.String(50), nullable=False),
        sa.Column("size", sa.String(20), nullable=False),
        sa.Column("container_type", sa.String(50), nullable=False),
        sa.Column("owner_type", sa.String(10), nullable=False),
        sa.Column("status_override", sa.String(30)),
        sa.Column("remarks", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_by", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_containers_container_number", "containers", ["container_number"], unique=True)

    op.create_table(
        "container_purchase_details",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("manufacture_date", sa.Date()),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("purchase_price", sa.Float()),
        sa.Column("purchased_from", sa.String(255)),
        sa.Column("owned_by", sa.String(255)),
        sa.Column("available_at", sa.String(255)),
        sa.Column("currency", sa.String(3), server_default="USD"),
    )
    op.create_index(
        "ix_container_purchase_details_container_id",
        "container_purchase_details", ["container_id"], unique=True,
    )

    op.create_table(
        "container_hire_details",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("hire_start_date", sa.Date()),
        sa.Column("hire_end_date", sa.Date()),
        sa.Column("hired_by", sa.String(255)),
        sa.Column("return_date", sa.Date()),
        sa.Column("free_days", sa.Integer(), server_default="0"),
        sa.Column("place_of_loading", sa.String(255)),
        sa.Column("place_of_destination", sa.String(255)),
    )
    op.create_index(
        "ix_container_hire_details_container_id",
        "container_hire_details", ["container_id"], unique=True,
    )

    op.create_table(
        "container_status_events",
        sa.Column("sequence", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("container_id", sa.String(36),
                  sa.ForeignKey("containers.id"), nullable=False),
        sa.Column("location", sa.String(255)),
        sa.Column("availability", sa.String(30)),
        sa.Column("note", sa.Text()),
        sa.Column("actor", sa.String(100)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_container_status_events_container_id", "container_status_events", ["container_id"]
    )

    # ── Consignments ─────────────────────────────────────────

    op.create_table(
        "consignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("consignment_number", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), server_default="Draft"),
        sa.Column("shipper", sa.String(255), nullable=False),
        sa.Column("consignee", sa.String(255), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("eform", sa.String(20), nullable=False),
        sa.Column("eform_date", sa.Date(), nullable=False),
        sa.Column("bank", sa.String(255)),
        sa.Column("consignment_value", sa.Float(), server_default="0"),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("payment_type", sa.String(50), nullable=False),
        sa.Column("voyage", sa.String(100), nullable=False),
        sa.Column("vessel", sa.String(255)),
        sa.Column("shipping_line", sa.String(255), nullable=False),
        sa.Column("seal_no", sa.String(100)),
        sa.Column("eta", sa.Date()),
        sa.Column("net_weight", sa.Float(), server_default="0"),
        sa.Column("gross_weight", sa.Float(), server_default="0"),
        sa.Column("remarks", sa.Text()),
        sa.Column("containers", sa.JSON(), server_default="[]"),
        sa.Column("orders", sa.JSON(), server_default="[]"),
        sa.Column("created_by", sa.String(100)),
        sa.Column("updated_by", sa.String(100)),
        *_timestamps(),
    )
    op.create_index(
        "ix_consignments_consignment_number", "consignments", ["consignment_number"], unique=True
    )
    op.create_index("ix_consignments_status", "consignments", ["status"])

    op.create_table(
        "consignment_tracking",
        sa.Column("sequence", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("consignment_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("old_status", sa.String(20)),
        sa.Column("new_status", sa.String(20)),
        sa.Column("actor", sa.String(100)),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_consignment_tracking_consignment_id", "consignment_tracking", ["consignment_id"]
    )

    op.create_table(
        "eta_config",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("status", sa.String(20), nullable=False, unique=True),
        sa.Column("days_offset", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    for table in (
        "eta_config",
        "consignment_tracking",
        "consignments",
        "container_status_events",
        "container_hire_details",
        "container_purchase_details",
        "containers",
        "order_tracking_events",
        "transport_details",
        "order_items",
        "receivers",
        "senders",
        "orders",
    ):
        op.drop_table(table)
