import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentmatch.core.database import BaseModel

if TYPE_CHECKING:
    from rentmatch.models.property import Property

class MemberRoleEnum(str, enum.Enum):

    OWNER = "owner"
    MEMBER = "member"

class Counterparty(BaseModel):
    """A landlord organization; an individual landlord is a personal one."""

    __tablename__ = "counterparties"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    is_personal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    members: Mapped[list["CounterpartyMember"]] = relationship(
        "CounterpartyMember",
        back_populates="counterparty",
        cascade="all, delete-orphan",
    )
    properties: Mapped[list["Property"]] = relationship(
        "Property",
        back_populates="counterparty",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Counterparty(id={self.id}, name={self.name})>"

class CounterpartyMember(BaseModel):

    __tablename__ = "counterparty_members"

    counterparty_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("counterparties.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[MemberRoleEnum] = mapped_column(
        Enum(
            MemberRoleEnum,
            name="member_role_enum",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=MemberRoleEnum.OWNER,
        nullable=False,
    )

    # Self-declared profile rating, 0-5
    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2),
        default=Decimal("0"),
        nullable=False,
    )
    review_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    last_active_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    is_suspended: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    counterparty: Mapped["Counterparty"] = relationship(
        "Counterparty",
        back_populates="members",
    )

    __table_args__ = (
        CheckConstraint(
            "average_rating >= 0 AND average_rating <= 5",
            name="check_average_rating_range",
        ),
        CheckConstraint("review_count >= 0", name="check_review_count_non_negative"),
        Index("idx_counterparty_members_counterparty_id", "counterparty_id"),
        Index("idx_counterparty_members_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<CounterpartyMember(id={self.id}, counterparty_id={self.counterparty_id})>"
