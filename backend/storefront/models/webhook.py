"""
Outbound webhook registrations.

Third parties register a URL to be notified about catalog events.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class WebhookEventType(str, PyEnum):
    """Catalog events that can be subscribed to."""

    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"


class WebhookSubscription(Base):
    """Registered (url, event type) pair. Never updated once created."""

    __tablename__ = "webhook_subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(2048), unique=True)
    event_type: Mapped[WebhookEventType] = mapped_column(
        Enum(WebhookEventType, values_callable=lambda e: [m.value for m in e]),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<WebhookSubscription {self.event_type.value} -> {self.url}>"
