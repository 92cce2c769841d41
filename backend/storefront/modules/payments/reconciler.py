"""
Order reconciliation for payment notifications.

Flow for one notification:
1. Ignore anything that is not a payment event with a data id
2. Fetch the authoritative payment from the provider
3. Find the order named by the payment's external reference
4. Refresh the stored payment result and apply the status transition
5. Save, then re-read the stored status to confirm the write

Stock return is not done here. The outcome carries the lines to restock
so the caller can run it after the provider has been answered.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.exceptions import OrderPersistenceError
from storefront.models.shop import Order, OrderStatus, PaymentResult
from storefront.modules.payments.provider import PaymentProvider, ProviderPayment
from storefront.modules.payments.status import (
    Transition,
    is_updatable,
    map_payment_status,
)
from storefront.modules.shop.service import ShopService


class NotificationData(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str | None = None


class Notification(BaseModel):
    """Webhook body sent by the provider."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    action: str | None = None
    data: NotificationData | None = None

    @property
    def payment_id(self) -> str | None:
        return self.data.id if self.data else None


@dataclass
class ReconcileOutcome:
    """Result reported back to the provider."""

    processed: bool
    message: str
    order_id: str | None = None
    transition: Transition | None = None
    stock_lines: list[tuple[int, int]] = field(default_factory=list)

    @property
    def needs_stock_return(self) -> bool:
        return bool(self.stock_lines)


def payment_result_from(payment: ProviderPayment) -> PaymentResult:
    return PaymentResult(
        id=payment.id,
        status=payment.status,
        update_time=payment.update_time or datetime.utcnow().isoformat(),
        email_address=payment.payer_email,
        card_brand=payment.payment_method_id,
        card_last_four=payment.card_last_four,
    )


class OrderReconciler:
    """
    Applies provider payment updates to orders.

    Usage:
        reconciler = OrderReconciler(db, provider)
        outcome = await reconciler.reconcile(payload)
    """

    def __init__(self, db: AsyncSession, provider: PaymentProvider) -> None:
        self.db = db
        self.provider = provider
        self.shop = ShopService(db)

    async def reconcile(self, payload: dict[str, Any]) -> ReconcileOutcome:
        """
        Reconcile one verified notification.

        Raises:
            PaymentProviderError: Provider unavailable or returned bad data
            OrderPersistenceError: Order could not be saved or verified
        """
        notification = Notification.model_validate(payload)
        payment_id = notification.payment_id

        if notification.type != "payment" or not payment_id:
            logger.info(
                f"Ignoring notification (type={notification.type}, "
                f"data.id={payment_id or 'N/A'})"
            )
            return ReconcileOutcome(False, "Event type ignored or data ID missing")

        payment = await self.provider.get_payment(payment_id)
        order_id = payment.external_reference

        order = await self.shop.get_order(order_id)
        if not order:
            logger.warning(
                f"Order {order_id} not found for payment {payment_id}"
            )
            return ReconcileOutcome(False, "Order not found", order_id=order_id)

        current = order.order_status
        if not is_updatable(current):
            logger.info(
                f"Order {order.id} is {current.value}, ignoring payment "
                f"{payment_id} ({payment.status})"
            )
            return ReconcileOutcome(
                False,
                f"Order not updatable (status: {current.value})",
                order_id=order.id,
            )

        order.provider_payment_id = payment.id
        order.payment_result = payment_result_from(payment)
        transition = map_payment_status(current, payment.status)

        if transition.changed:
            order.order_status = transition.new_status
            if transition.record_paid_at:
                order.paid_at = datetime.utcnow()

        await self._save_and_verify(order, transition, payment_id)

        if not transition.changed:
            logger.info(
                f"Payment {payment_id} ({payment.status}) did not change order "
                f"{order.id} ({current.value}); payment result refreshed"
            )
            return ReconcileOutcome(
                True, "Payment result updated", order_id=order.id, transition=transition
            )

        logger.info(
            f"Order {order.id} updated {current.value} -> "
            f"{transition.new_status.value} by payment {payment_id}"
        )
        return ReconcileOutcome(
            True,
            f"Order status updated to {transition.new_status.value}",
            order_id=order.id,
            transition=transition,
            stock_lines=(
                ShopService.stock_lines(order) if transition.needs_stock_return else []
            ),
        )

    async def _save_and_verify(
        self,
        order: Order,
        transition: Transition,
        payment_id: str,
    ) -> None:
        """Commit the order and confirm the stored status is the intended one."""
        # Read before commit: a rollback expires the instance
        order_id = order.id
        intended = transition.new_status
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Failed to save order {order_id} for payment {payment_id} "
                f"({transition.current.value} -> {intended.value}): {e}"
            )
            raise OrderPersistenceError(
                f"Could not save order {order_id}",
                order_id=order_id,
                attempted_status=intended.value,
            ) from e

        try:
            stored = await self.shop.get_order_status(order_id)
        except SQLAlchemyError as e:
            logger.error(
                f"Could not re-read order {order_id} after saving payment "
                f"{payment_id} (intended {intended.value}): {e}"
            )
            raise OrderPersistenceError(
                f"Order {order_id} status verification failed",
                order_id=order_id,
                attempted_status=intended.value,
            ) from e

        if stored != intended.value:
            logger.error(
                f"Order {order_id} stored status {stored} does not match "
                f"intended {intended.value} (payment {payment_id})"
            )
            raise OrderPersistenceError(
                f"Order {order_id} status verification failed",
                order_id=order_id,
                attempted_status=intended.value,
            )


async def return_order_stock(
    session_factory: async_sessionmaker[AsyncSession],
    order_id: str,
    stock_lines: list[tuple[int, int]],
    payment_id: str | None = None,
) -> None:
    """
    Restock an order's items on a fresh session.

    Runs after the provider has been answered, so failures can only be
    logged for manual reconciliation.
    """
    try:
        async with session_factory() as session:
            restocked = await ShopService(session).return_stock(stock_lines)
        logger.info(
            f"Returned stock for order {order_id} (payment {payment_id}): "
            f"{restocked}/{len(stock_lines)} products"
        )
    except Exception:
        logger.exception(
            f"Stock return failed for order {order_id} (payment {payment_id}), "
            f"lines={stock_lines}"
        )
