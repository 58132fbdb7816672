from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    store_id: Mapped[int] = mapped_column(ForeignKey("stores.id", ondelete="CASCADE"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id", ondelete="RESTRICT"), index=True)
    address_id: Mapped[int] = mapped_column(ForeignKey("addresses.id", ondelete="RESTRICT"))
    coupon_id: Mapped[int | None] = mapped_column(ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)

    status: Mapped[str] = mapped_column(String(30), default="em_processamento", index=True)
    payment_method: Mapped[str] = mapped_column(String(20))
    payment_status: Mapped[str] = mapped_column(String(20), default="pendente")
    payment_proof_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    change_for: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)

    subtotal: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    delivery_fee: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    discount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2), default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    origin: Mapped[str] = mapped_column(String(20), default="dashboard")  # dashboard, app
    device_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    canceled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    canceled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    store = relationship("Store")
    customer = relationship("Customer")
    address = relationship("Address")
    coupon = relationship("Coupon")
    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order")
    status_history = relationship(
        "OrderStatusHistory",
        cascade="all, delete-orphan",
        back_populates="order",
        order_by="OrderStatusHistory.id",
    )
