from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class Technician(TimestampMixin, Base):
    __tablename__ = "technicians"

    __table_args__ = (
        UniqueConstraint(
            "substation_id", "employee_id",
            name="uq_technicians_substation_employee",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    substation_id: Mapped[int] = mapped_column(
        ForeignKey("substations.id", ondelete="CASCADE")
    )
    name: Mapped[str] = mapped_column(String(100))
    employee_id: Mapped[str] = mapped_column(String(20))
    contact_number: Mapped[str | None] = mapped_column(String(20), default=None)
    email: Mapped[str | None] = mapped_column(String(100), default=None)
    designation: Mapped[str | None] = mapped_column(String(50), default=None)
    # Soft delete only: history keeps pointing at retired technicians
    is_active: Mapped[bool] = mapped_column(default=True)

    substation = relationship("Substation", back_populates="technicians")

    def __repr__(self) -> str:
        return f"<Technician {self.employee_id} {self.name}>"
