from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_users_listings_offers"
down_revision = None
branch_labels = None
depends_on = None


def _in(column: str, *values: str) -> str:
    return f"{column} IN ({','.join(repr(v) for v in values)})"


def _audit():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(), nullable=True),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True, unique=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="buyer"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        *_audit(),
        sa.CheckConstraint(_in("role", "buyer", "seller", "admin"), name="chk_users_role"),
        sa.CheckConstraint(_in("status", "active", "suspended", "banned"), name="chk_users_status"),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("key_prefix", sa.String(length=16), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("rotated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_key_prefix", "api_keys", ["key_prefix"])

    op.create_table(
        "categories",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("parent_id", sa.String(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        *_audit(),
    )

    op.create_table(
        "site_settings",
        sa.Column("key", sa.String(length=80), primary_key=True),
        sa.Column("value", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category_id", sa.String(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("condition", sa.String(length=20), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("negotiable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("location", sa.String(length=200), nullable=False),
        sa.Column("location_lat", sa.Float(), nullable=False),
        sa.Column("location_lng", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("listing_duration", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("favorites_count", sa.Integer(), nullable=False, server_default="0"),
        *_audit(),
        sa.CheckConstraint(_in("condition", "new", "like_new", "good", "acceptable"), name="chk_listings_condition"),
        sa.CheckConstraint(
            _in("status", "draft", "pending", "active", "sold", "expired", "archived"), name="chk_listings_status"
        ),
        sa.CheckConstraint("price >= 0", name="chk_listings_price"),
        sa.CheckConstraint("listing_duration > 0", name="chk_listings_duration"),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])
    op.create_index("ix_listings_status", "listings", ["status"])
    op.create_index("ix_listings_expires_at", "listings", ["expires_at"])

    op.create_table(
        "listing_images",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_listing_images_listing_id", "listing_images", ["listing_id"])

    op.create_table(
        "listing_renewals",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("previous_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("new_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("renewed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_listing_renewals_renewed_at", "listing_renewals", ["renewed_at"])
    op.create_index("ix_listing_renewals_owner_renewed", "listing_renewals", ["owner_id", "renewed_at"])

    op.create_table(
        "offers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("buyer_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("seller_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="offer"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("counter_offer_id", sa.String(), sa.ForeignKey("offers.id", ondelete="SET NULL"), nullable=True),
        *_audit(),
        sa.CheckConstraint(_in("type", "offer", "buy_now"), name="chk_offers_type"),
        sa.CheckConstraint(
            _in("status", "pending", "accepted", "declined", "countered", "sold"), name="chk_offers_status"
        ),
        sa.CheckConstraint("amount > 0", name="chk_offers_amount"),
        sa.CheckConstraint("buyer_id <> seller_id", name="chk_offers_parties"),
    )
    op.create_index("ix_offers_listing_id", "offers", ["listing_id"])
    op.create_index("ix_offers_counter_offer_id", "offers", ["counter_offer_id"])
    op.create_index("ix_offers_listing_buyer_status", "offers", ["listing_id", "buyer_id", "status"])

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("key", sa.String(length=200), nullable=False),
        sa.Column("request_hash", sa.String(length=80), nullable=False),
        sa.Column("response", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "key", name="uq_idempotency_user_key"),
    )


def downgrade():
    op.drop_table("idempotency_keys")

    op.drop_index("ix_offers_listing_buyer_status", table_name="offers")
    op.drop_index("ix_offers_counter_offer_id", table_name="offers")
    op.drop_index("ix_offers_listing_id", table_name="offers")
    op.drop_table("offers")

    op.drop_index("ix_listing_renewals_owner_renewed", table_name="listing_renewals")
    op.drop_index("ix_listing_renewals_renewed_at", table_name="listing_renewals")
    op.drop_table("listing_renewals")

    op.drop_index("ix_listing_images_listing_id", table_name="listing_images")
    op.drop_table("listing_images")

    op.drop_index("ix_listings_expires_at", table_name="listings")
    op.drop_index("ix_listings_status", table_name="listings")
    op.drop_index("ix_listings_owner_id", table_name="listings")
    op.drop_table("listings")

    op.drop_table("site_settings")
    op.drop_table("categories")

    op.drop_index("ix_api_keys_key_prefix", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("users")
