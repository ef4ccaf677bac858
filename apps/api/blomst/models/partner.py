"""Partner model: a florist shop that fulfills orders in its postal areas."""

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from blomst.models.base import Base


class Partner(Base):
    """Fulfillment partner.

    ``zone_ranges`` holds exact postal codes (``"4600"``) or inclusive ranges
    (``"1000-2999"``). The roster is ordered by creation time and the first
    partner covering a postal code is assigned.
    """

    __tablename__ = "partners"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    address: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    zone_ranges: Mapped[list[str]] = mapped_column(
        ARRAY(String),
        default=list,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Partner {self.name}>"
