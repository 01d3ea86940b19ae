from alembic import op
import sqlalchemy as sa

revision = "0003_favorites"
down_revision = "0002_moderation_notifications"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "favorites",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "listing_id", name="uq_favorites_user_listing"),
    )
    op.create_index("ix_favorites_listing_id", "favorites", ["listing_id"])


def downgrade():
    op.drop_index("ix_favorites_listing_id", table_name="favorites")
    op.drop_table("favorites")
