import enum
import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentmatch.core.database import BaseModel
from rentmatch.core.location import normalize_location

if TYPE_CHECKING:
    from rentmatch.models.counterparty import Counterparty

class PropertyStatusEnum(str, enum.Enum):

    AVAILABLE = "available"
    RENTED = "rented"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"

class Property(BaseModel):

    __tablename__ = "properties"

    counterparty_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("counterparties.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    city: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    address: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
    )
    # Normalized copy of city, kept in sync on write for the location pre-filter
    city_token: Mapped[str] = mapped_column(
        String(128),
        default="",
        nullable=False,
    )

    monthly_rent: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    property_type: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    bedrooms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    available_from: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )

    status: Mapped[PropertyStatusEnum] = mapped_column(
        Enum(
            PropertyStatusEnum,
            name="property_status_enum",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PropertyStatusEnum.AVAILABLE,
        nullable=False,
    )
    availability: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    counterparty: Mapped["Counterparty"] = relationship(
        "Counterparty",
        back_populates="properties",
    )

    __table_args__ = (
        CheckConstraint("monthly_rent >= 0", name="check_monthly_rent_non_negative"),
        Index("idx_properties_counterparty_id", "counterparty_id"),
        Index("idx_properties_city_token", "city_token"),
        Index("idx_properties_matchable", "status", "availability", "monthly_rent"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, city={self.city}, status={self.status})>"


@event.listens_for(Property, "before_insert")
@event.listens_for(Property, "before_update")
def _sync_city_token(mapper, connection, target: Property) -> None:
    target.city_token = normalize_location(target.city)
