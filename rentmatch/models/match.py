import enum
import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentmatch.core.database import BaseModel

if TYPE_CHECKING:
    from rentmatch.models.counterparty import Counterparty
    from rentmatch.models.property import Property
    from rentmatch.models.rental_request import RentalRequest

class MatchStatusEnum(str, enum.Enum):

    ACTIVE = "active"
    BELOW_THRESHOLD = "below_threshold"

class Match(BaseModel):

    __tablename__ = "request_matches"

    rental_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("rental_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    counterparty_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("counterparties.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Best property of the counterparty the score was computed for
    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("properties.id", ondelete="SET NULL"),
        nullable=True,
    )

    score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(
        String(512),
        default="",
        nullable=False,
    )

    status: Mapped[MatchStatusEnum] = mapped_column(
        Enum(MatchStatusEnum, name="match_status_enum", values_callable=lambda x: [e.value for e in x]),
        default=MatchStatusEnum.ACTIVE,
        nullable=False,
    )
    is_viewed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    is_notified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    rental_request: Mapped["RentalRequest"] = relationship(
        "RentalRequest",
        back_populates="matches",
    )
    counterparty: Mapped["Counterparty"] = relationship(
        "Counterparty",
    )
    matched_property: Mapped[Optional["Property"]] = relationship(
        "Property",
    )

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="check_score_range"),
        UniqueConstraint(
            "rental_request_id",
            "counterparty_id",
            name="uq_match_request_counterparty",
        ),
        Index("idx_request_matches_counterparty_id", "counterparty_id"),
        Index("idx_request_matches_status", "status"),
        Index("idx_request_matches_property_id", "property_id"),
    )

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, score={self.score}, status={self.status})>"
