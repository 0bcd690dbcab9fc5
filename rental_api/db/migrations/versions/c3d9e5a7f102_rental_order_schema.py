"""Rental order schema.

Creates:
- companies
- pricing_tiers
- orders (status, financial status, pricing snapshot, optimistic version)
- order_items
- order_status_history (append-only, seq_no unique per order)
- scan_events (append-only)
- notification_logs
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "c3d9e5a7f102"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID_DEFAULT = sa.text("gen_random_uuid()")
NOW = sa.text("now()")
STATUS = sa.String(32)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("pmg_margin_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("25.00")),
        sa.Column("contact_email", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("name", name="uq_companies_name"),
        sa.Index("ix_companies_deleted_at", "deleted_at"),
    )

    op.create_table(
        "pricing_tiers",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("country", sa.Text(), nullable=False),
        sa.Column("city", sa.Text(), nullable=False),
        sa.Column("volume_min", sa.Numeric(10, 3), nullable=False),
        sa.Column("volume_max", sa.Numeric(10, 3), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("volume_min >= 0", name="ck_pricing_tiers_volume_min_non_negative"),
        sa.CheckConstraint("volume_max > volume_min", name="ck_pricing_tiers_volume_range"),
        sa.CheckConstraint("base_price > 0", name="ck_pricing_tiers_base_price_positive"),
        sa.Index("ix_pricing_tiers_location", "country", "city"),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("order_code", sa.Text(), nullable=False),
        sa.Column("company_id", sa.UUID(), nullable=False),
        sa.Column("brand_id", sa.UUID(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=False),
        sa.Column("contact_name", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.Text(), nullable=True),
        sa.Column("contact_phone", sa.Text(), nullable=True),
        sa.Column("event_start_date", sa.Date(), nullable=True),
        sa.Column("event_end_date", sa.Date(), nullable=True),
        sa.Column("venue_name", sa.Text(), nullable=True),
        sa.Column("venue_country", sa.Text(), nullable=True),
        sa.Column("venue_city", sa.Text(), nullable=True),
        sa.Column("venue_address", sa.Text(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("calculated_volume", sa.Numeric(10, 3), nullable=False, server_default=sa.text("0")),
        sa.Column("pricing_tier_id", sa.UUID(), nullable=True),
        sa.Column("a2_base_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("a2_adjusted_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("a2_adjustment_reason", sa.Text(), nullable=True),
        sa.Column("a2_adjusted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("a2_adjusted_by", sa.UUID(), nullable=True),
        sa.Column("pmg_margin_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("pmg_margin_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("pmg_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pmg_reviewed_by", sa.UUID(), nullable=True),
        sa.Column("pmg_review_notes", sa.Text(), nullable=True),
        sa.Column("final_total_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("quote_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_window_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_window_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pickup_window_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pickup_window_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("truck_photos", sa.JSON(), nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("status", STATUS, nullable=False, server_default="DRAFT"),
        sa.Column("financial_status", STATUS, nullable=False, server_default="PENDING_QUOTE"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.UUID(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["pricing_tier_id"], ["pricing_tiers.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("order_code", name="uq_orders_order_code"),
        # Pricing totals are only ever written together.
        sa.CheckConstraint(
            "(final_total_price IS NULL) = (pmg_margin_amount IS NULL)",
            name="ck_orders_pricing_totals_together",
        ),
        sa.Index("ix_orders_company_id", "company_id"),
        sa.Index("ix_orders_status", "status"),
        sa.Index("ix_orders_event_start_date", "event_start_date"),
        sa.Index("ix_orders_event_end_date", "event_end_date"),
        sa.Index("ix_orders_deleted_at", "deleted_at"),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("asset_id", sa.UUID(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("volume", sa.Numeric(10, 3), nullable=False, server_default=sa.text("0")),
        sa.Column("condition", STATUS, nullable=False, server_default="GREEN"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        sa.Index("ix_order_items_order_id", "order_id"),
        sa.Index("ix_order_items_asset_id", "asset_id"),
    )

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("seq_no", sa.Integer(), nullable=False),
        sa.Column("from_status", STATUS, nullable=True),
        sa.Column("status", STATUS, nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("order_id", "seq_no", name="uq_order_status_history_order_seq"),
        sa.Index("ix_order_status_history_order_id", "order_id"),
    )

    op.create_table(
        "scan_events",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("asset_id", sa.UUID(), nullable=True),
        sa.Column("scan_type", STATUS, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("condition", STATUS, nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("scanned_by", sa.UUID(), nullable=False),
        sa.Column("scanned_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.CheckConstraint("quantity > 0", name="ck_scan_events_quantity_positive"),
        sa.Index("ix_scan_events_order_id", "order_id"),
        sa.Index("ix_scan_events_asset_id", "asset_id"),
    )

    op.create_table(
        "notification_logs",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=UUID_DEFAULT),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("notification_type", STATUS, nullable=False),
        sa.Column("recipients", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("status", STATUS, nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.Index("ix_notification_logs_order_id", "order_id"),
        sa.Index("ix_notification_logs_status", "status"),
    )

    # Append-only tables: reject UPDATE and DELETE at the database level.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_append_only_change()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for tbl in ("scan_events", "order_status_history"):
        op.execute(
            f"""
            CREATE TRIGGER {tbl}_append_only
            BEFORE UPDATE OR DELETE ON {tbl}
            FOR EACH ROW EXECUTE FUNCTION reject_append_only_change();
            """
        )


def downgrade() -> None:
    for tbl in ("scan_events", "order_status_history"):
        op.execute(f"DROP TRIGGER IF EXISTS {tbl}_append_only ON {tbl};")
    op.execute("DROP FUNCTION IF EXISTS reject_append_only_change();")

    op.drop_table("notification_logs")
    op.drop_table("scan_events")
    op.drop_table("order_status_history")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("pricing_tiers")
    op.drop_table("companies")
