from sqlalchemy import String, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class StoreMonthlyUsage(Base):
    """Per-store, per-calendar-month counter of newly created customers."""

    __tablename__ = "store_monthly_usage"
    __table_args__ = (UniqueConstraint("store_id", "period", name="uq_store_usage_period"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    store_id: Mapped[int] = mapped_column(ForeignKey("stores.id", ondelete="CASCADE"), index=True)
    period: Mapped[str] = mapped_column(String(7))  # YYYY-MM
    new_customers: Mapped[int] = mapped_column(Integer, default=0)
