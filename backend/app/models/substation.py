from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class Substation(TimestampMixin, Base):
    __tablename__ = "substations"

    id: Mapped[int] = mapped_column(primary_key=True)
    substation_code: Mapped[str] = mapped_column(String(20), unique=True)  # "SS-220-A"
    substation_name: Mapped[str] = mapped_column(String(100))
    location: Mapped[str | None] = mapped_column(String(200), default=None)
    voltage_level: Mapped[str | None] = mapped_column(String(50), default=None)  # "220/33 kV"
    installed_capacity: Mapped[str | None] = mapped_column(String(50), default=None)
    contact_info: Mapped[str | None] = mapped_column(String(200), default=None)
    password_hash: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(default=True)

    technicians = relationship("Technician", back_populates="substation", passive_deletes=True)
    engineers = relationship("User", back_populates="substation")

    def __repr__(self) -> str:
        return f"<Substation {self.substation_code} ({self.substation_name})>"
