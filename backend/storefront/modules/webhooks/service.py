"""
Webhook registration service.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import DuplicateWebhookError
from storefront.models.webhook import WebhookEventType, WebhookSubscription


class WebhookService:
    """
    Stores and looks up outbound webhook registrations.

    Usage:
        webhooks = WebhookService(db_session)
        await webhooks.register("https://example.com/hook", WebhookEventType.PRODUCT_CREATED)
        urls = await webhooks.urls_for(WebhookEventType.PRODUCT_CREATED)
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def register(
        self,
        url: str,
        event_type: WebhookEventType,
    ) -> WebhookSubscription:
        """
        Register a URL for an event type.

        Raises:
            DuplicateWebhookError: If the URL is already registered
        """
        existing = await self.db.execute(
            select(WebhookSubscription.id).where(WebhookSubscription.url == url)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateWebhookError(f"Webhook URL already registered: {url}")

        subscription = WebhookSubscription(url=url, event_type=event_type)
        self.db.add(subscription)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration of the same URL
            await self.db.rollback()
            raise DuplicateWebhookError(f"Webhook URL already registered: {url}") from e

        await self.db.refresh(subscription)
        return subscription

    async def list_subscriptions(
        self,
        event_type: WebhookEventType | None = None,
    ) -> list[WebhookSubscription]:
        """List registrations, optionally for one event type."""
        query = select(WebhookSubscription).order_by(WebhookSubscription.id)
        if event_type:
            query = query.where(WebhookSubscription.event_type == event_type)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def urls_for(self, event_type: WebhookEventType) -> list[str]:
        """URLs registered for an event type."""
        result = await self.db.execute(
            select(WebhookSubscription.url).where(
                WebhookSubscription.event_type == event_type
            )
        )
        return list(result.scalars().all())
