"""
Shop models for e-commerce functionality.

Includes:
- Products (inventory tracked for stock return)
- Orders with the payment result reported by the provider
- Order items (snapshot of the product at checkout)
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.database import Base


class OrderStatus(str, PyEnum):
    """Order lifecycle status."""

    PENDING_PAYMENT = "pending_payment"
    FAILED = "failed"
    PROCESSING = "processing"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


@dataclass
class PaymentResult:
    """Payment details as last reported by the provider."""

    id: str | None = None
    status: str | None = None
    update_time: str | None = None
    email_address: str | None = None
    card_brand: str | None = None
    card_last_four: str | None = None


class Product(Base):
    """Product for sale."""

    __tablename__ = "shop_products"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(String(2000))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    image_url: Mapped[str | None] = mapped_column(String(500))

    # Inventory
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    order_items: Mapped[list["OrderItem"]] = relationship(back_populates="product")

    @property
    def is_in_stock(self) -> bool:
        return self.stock_quantity > 0

    def __repr__(self) -> str:
        return f"<Product {self.sku}: {self.name}>"


class Order(Base):
    """Customer order."""

    __tablename__ = "shop_orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid4().hex
    )
    customer_email: Mapped[str | None] = mapped_column(String(255))

    order_status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, values_callable=lambda e: [m.value for m in e]),
        default=OrderStatus.PENDING_PAYMENT,
        index=True,
    )

    # Pricing
    items_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    shipping_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    installments: Mapped[int] = mapped_column(Integer, default=1)

    # Payment
    payment_method: Mapped[str | None] = mapped_column(String(50))
    provider_payment_id: Mapped[str | None] = mapped_column(String(255), index=True)
    payment_result_id: Mapped[str | None] = mapped_column(String(255))
    payment_result_status: Mapped[str | None] = mapped_column(String(50))
    payment_result_update_time: Mapped[str | None] = mapped_column(String(64))
    payment_result_email: Mapped[str | None] = mapped_column(String(255))
    payment_result_card_brand: Mapped[str | None] = mapped_column(String(50))
    payment_result_card_last_four: Mapped[str | None] = mapped_column(String(4))

    # Lifecycle timestamps
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )

    @property
    def payment_result(self) -> PaymentResult:
        return PaymentResult(
            id=self.payment_result_id,
            status=self.payment_result_status,
            update_time=self.payment_result_update_time,
            email_address=self.payment_result_email,
            card_brand=self.payment_result_card_brand,
            card_last_four=self.payment_result_card_last_four,
        )

    @payment_result.setter
    def payment_result(self, result: PaymentResult) -> None:
        self.payment_result_id = result.id
        self.payment_result_status = result.status
        self.payment_result_update_time = result.update_time
        self.payment_result_email = result.email_address
        self.payment_result_card_brand = result.card_brand
        self.payment_result_card_last_four = result.card_last_four

    def __repr__(self) -> str:
        return f"<Order {self.id} ({self.order_status.value})>"


class OrderItem(Base):
    """Line item in an order."""

    __tablename__ = "shop_order_items"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("shop_orders.id"))
    product_id: Mapped[int] = mapped_column(ForeignKey("shop_products.id"))

    # Snapshot at time of order
    name: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    image_url: Mapped[str | None] = mapped_column(String(500))

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship(back_populates="order_items")
