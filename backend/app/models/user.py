import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    admin = "admin"
    engineer = "engineer"


class User(TimestampMixin, Base):
    """Staff account. Engineers are bound to one substation, admins to none."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "(role = 'engineer' AND substation_id IS NOT NULL)"
            " OR (role = 'admin' AND substation_id IS NULL)",
            name="role_substation",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    full_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(100), unique=True)
    phone: Mapped[str | None] = mapped_column(String(20), default=None)
    employee_id: Mapped[str | None] = mapped_column(String(20), unique=True, default=None)
    role: Mapped[UserRole]
    substation_id: Mapped[int | None] = mapped_column(
        ForeignKey("substations.id", ondelete="RESTRICT"), default=None
    )
    is_active: Mapped[bool] = mapped_column(default=True)
    last_login: Mapped[datetime | None] = mapped_column(default=None)

    substation = relationship("Substation", back_populates="engineers")

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role.value})>"
