from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from marketmate.core.ids import id_factory
from marketmate.models.base import AuditMixin, Base


class Category(AuditMixin, Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("cat"))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
