from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from marketmate.core.ids import id_factory
from marketmate.models.base import AuditMixin, Base
from marketmate.models.enums import UserRole, UserStatus, check_in


class User(AuditMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(check_in("role", UserRole), name="chk_users_role"),
        CheckConstraint(check_in("status", UserStatus), name="chk_users_status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=id_factory("usr"))
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)

    # identity provider decides the role; we only read it
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.BUYER.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
