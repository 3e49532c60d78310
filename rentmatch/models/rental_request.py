import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentmatch.core.database import BaseModel
from rentmatch.core.location import extract_city_token, normalize_location

if TYPE_CHECKING:
    from rentmatch.models.match import Match

class PoolStatusEnum(str, enum.Enum):

    ACTIVE = "active"
    MATCHED = "matched"
    EXPIRED = "expired"

class RentalRequest(BaseModel):

    __tablename__ = "rental_requests"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    title: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    location: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    # Normalized copies of location, kept in sync on write
    location_normalized: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    city_token: Mapped[str] = mapped_column(
        String(128),
        default="",
        nullable=False,
    )

    budget_from: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    budget_to: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )
    # Single figure, used only when no explicit range is given
    budget: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    property_type: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    bedrooms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    move_in_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    pool_status: Mapped[PoolStatusEnum] = mapped_column(
        Enum(
            PoolStatusEnum,
            name="pool_status_enum",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PoolStatusEnum.ACTIVE,
        nullable=False,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    view_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    matches: Mapped[list["Match"]] = relationship(
        "Match",
        back_populates="rental_request",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "budget_from IS NULL OR budget_to IS NULL OR budget_from <= budget_to",
            name="check_budget_range_valid",
        ),
        Index("idx_rental_requests_pool_status", "pool_status"),
        Index("idx_rental_requests_expires_at", "expires_at"),
        Index("idx_rental_requests_tenant_id", "tenant_id"),
        Index("idx_rental_requests_city_token", "city_token"),
    )

    def __repr__(self) -> str:
        return f"<RentalRequest(id={self.id}, pool_status={self.pool_status})>"


@event.listens_for(RentalRequest, "before_insert")
@event.listens_for(RentalRequest, "before_update")
def _sync_location_tokens(mapper, connection, target: RentalRequest) -> None:
    target.location_normalized = normalize_location(target.location)
    target.city_token = extract_city_token(target.location) or ""
