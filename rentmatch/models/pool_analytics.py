from datetime import date

from sqlalchemy import Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rentmatch.core.database import BaseModel

class PoolAnalytics(BaseModel):
    """Daily request counts per location, one row per (location, date_bucket)."""

    __tablename__ = "pool_analytics"

    # City token of the requests counted
    location: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    date_bucket: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    total_requests: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    active_requests: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    matched_requests: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    expired_requests: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("location", "date_bucket", name="uq_pool_analytics_location_date"),
        Index("idx_pool_analytics_date_bucket", "date_bucket"),
    )

    def __repr__(self) -> str:
        return (
            f"<PoolAnalytics(location={self.location}, date={self.date_bucket}, "
            f"active={self.active_requests})>"
        )
