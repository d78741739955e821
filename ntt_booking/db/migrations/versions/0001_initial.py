from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("is_published", sa.Boolean(), server_default=sa.false()),
        sa.Column("auto_cancel_enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("auto_cancel_timeout", sa.Integer(), server_default="30"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_businesses_slug", "businesses", ["slug"])

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("duration_minutes", sa.Integer(), server_default="60"),
        sa.Column("max_capacity", sa.Integer(), server_default="1"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )
    op.create_index("ix_services_business_id", "services", ["business_id"])

    op.create_table(
        "availability",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id", ondelete="SET NULL")),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("booked_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.String(length=255)),
        sa.UniqueConstraint(
            "business_id", "service_id", "date", "start_time",
            name="uq_availability_business_service_time",
        ),
        sa.CheckConstraint("capacity > 0", name="ck_availability_capacity_positive"),
        sa.CheckConstraint("booked_count >= 0", name="ck_availability_booked_non_negative"),
        sa.CheckConstraint("booked_count <= capacity", name="ck_availability_booked_within_capacity"),
    )
    op.create_index("ix_availability_business_id", "availability", ["business_id"])
    op.create_index("ix_availability_date", "availability", ["date"])

    booking_status = postgresql.ENUM(
        "pending", "confirmed", "completed", "cancelled", "no_show", name="bookingstatus"
    )
    booking_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ref_code", sa.String(length=16), nullable=False),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id", ondelete="SET NULL")),
        sa.Column("availability_id", sa.Integer(), sa.ForeignKey("availability.id", ondelete="SET NULL")),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=False),
        sa.Column("customer_phone", sa.String(length=32)),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("pax", sa.Integer(), nullable=False),
        sa.Column("status", booking_status, server_default="pending"),
        sa.Column("subtotal", sa.Numeric(10, 2), server_default="0"),
        sa.Column("addons_total", sa.Numeric(10, 2), server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_reason", sa.String(length=255)),
        sa.Column("cancelled_by", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("pax >= 1", name="ck_booking_pax_positive"),
        sa.CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
    )
    op.create_index("ix_bookings_ref_code", "bookings", ["ref_code"], unique=True)
    op.create_index("ix_bookings_business_id", "bookings", ["business_id"])
    op.create_index("ix_bookings_availability_id", "bookings", ["availability_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_expires_at", "bookings", ["expires_at"])

    item_type = postgresql.ENUM("variant", "addon", name="bookingitemtype")
    item_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "booking_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", item_type, nullable=False),
        sa.Column("item_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="1"),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
    )
    op.create_index("ix_booking_items_booking_id", "booking_items", ["booking_id"])

    payment_status = postgresql.ENUM(
        "pending", "processing", "succeeded", "failed", "refunded", name="paymentstatus"
    )
    payment_status.create(op.get_bind(), checkfirst=True)
    payment_gateway = postgresql.ENUM("stub", "bayarcash", name="paymentgateway")
    payment_gateway.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.CHAR(length=3), server_default="MYR"),
        sa.Column("status", payment_status, server_default="pending"),
        sa.Column("gateway", payment_gateway, nullable=False),
        sa.Column("method", sa.String(length=32)),
        sa.Column("gateway_session_id", sa.String(length=128)),
        sa.Column("gateway_payment_id", sa.String(length=128)),
        sa.Column("exchange_ref_number", sa.String(length=128)),
        sa.Column("payer_bank_code", sa.String(length=64)),
        sa.Column("checkout_url", sa.String(length=512)),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_gateway_session_id", "payments", ["gateway_session_id"])

    staff_role = postgresql.ENUM("owner", "admin", "staff", name="staffrole")
    staff_role.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "staff_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("login", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", staff_role, server_default="staff"),
        sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id", ondelete="CASCADE")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
    )

    actor_type = postgresql.ENUM("customer", "staff", "gateway", "system", name="actortype")
    actor_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_type", actor_type),
        sa.Column("actor", sa.String(length=64)),
        sa.Column("action", sa.String(length=255)),
        sa.Column("entity_id", sa.Integer()),
        sa.Column("payload", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("staff_users")
    op.drop_index("ix_payments_gateway_session_id", table_name="payments")
    op.drop_index("ix_payments_booking_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_booking_items_booking_id", table_name="booking_items")
    op.drop_table("booking_items")
    op.drop_table("bookings")
    op.drop_table("availability")
    op.drop_table("services")
    op.drop_table("businesses")
    for name in ("actortype", "staffrole", "paymentgateway", "paymentstatus", "bookingitemtype", "bookingstatus"):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
