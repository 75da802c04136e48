"""SQLAlchemy models for orders and processed client requests."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from domain import OrderingDomainError, OrderStatus


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Order(Base):
    """Order aggregate: owns its items and enforces status transitions."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.SUBMITTED.value, nullable=False)

    street: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    order_items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("status", OrderStatus.SUBMITTED.value)
        super().__init__(**kwargs)

    def add_order_item(
        self,
        product_id: int,
        product_name: str,
        unit_price: float,
        discount: float,
        units: int = 1,
    ) -> "OrderItem":
        """Add a line, merging units into an existing line for the same product."""
        if units <= 0:
            raise OrderingDomainError("Invalid number of units")
        if unit_price < 0:
            raise OrderingDomainError("Unit price cannot be negative")
        if discount < 0 or discount > unit_price * units:
            raise OrderingDomainError("The total of order item is lower than applied discount")

        for existing in self.order_items:
            if existing.product_id == product_id:
                existing.units += units
                existing.discount = max(existing.discount, discount)
                return existing

        item = OrderItem(
            product_id=product_id,
            product_name=product_name,
            unit_price=unit_price,
            discount=discount,
            units=units,
        )
        self.order_items.append(item)
        return item

    def set_paid_status(self) -> None:
        self.status = OrderStatus.PAID.value

    @property
    def total_units(self) -> int:
        return sum(item.units for item in self.order_items)

    @property
    def total_value(self) -> float:
        return sum((item.unit_price - item.discount) * item.units for item in self.order_items)


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    discount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    units: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="order_items")


class ClientRequest(Base):
    """Records command request ids so retried commands are not applied twice."""

    __tablename__ = "client_requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    succeeded: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
