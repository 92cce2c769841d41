"""
Shop API Endpoints.

Product management (admin) and order lookup.
Product changes are announced to registered outbound webhooks.
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_webhook_dispatcher, require_admin
from storefront.core.database import get_db
from storefront.models.shop import Order, Product
from storefront.models.webhook import WebhookEventType
from storefront.modules.shop.service import ShopService
from storefront.modules.webhooks.dispatcher import WebhookDispatcher
from storefront.modules.webhooks.service import WebhookService

router = APIRouter()


# ==================== Schemas ====================


class CreateProductRequest(BaseModel):
    """Create new product."""

    sku: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(ge=0)
    description: str | None = None
    image_url: str | None = None
    stock_quantity: int = Field(0, ge=0)


class UpdateProductRequest(BaseModel):
    """Update product fields. Omitted fields are left unchanged."""

    name: str | None = Field(None, min_length=1, max_length=255)
    price: Decimal | None = Field(None, ge=0)
    description: str | None = None
    image_url: str | None = None
    stock_quantity: int | None = Field(None, ge=0)


def serialize_product(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "price": float(product.price),
        "image_url": product.image_url,
        "stock_quantity": product.stock_quantity,
        "in_stock": product.is_in_stock,
    }


def serialize_order(order: Order) -> dict[str, Any]:
    result = order.payment_result
    return {
        "id": order.id,
        "order_status": order.order_status.value,
        "items_price": float(order.items_price),
        "shipping_price": float(order.shipping_price),
        "total_price": float(order.total_price),
        "installments": order.installments,
        "payment_method": order.payment_method,
        "provider_payment_id": order.provider_payment_id,
        "payment_result": {
            "id": result.id,
            "status": result.status,
            "update_time": result.update_time,
            "email_address": result.email_address,
            "card_brand": result.card_brand,
            "card_last_four": result.card_last_four,
        },
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
        "items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price),
            }
            for item in order.items
        ],
        "created_at": order.created_at.isoformat(),
    }


async def _announce(
    db: AsyncSession,
    background_tasks: BackgroundTasks,
    dispatcher: WebhookDispatcher,
    event_type: WebhookEventType,
    product: Product,
) -> None:
    urls = await WebhookService(db).urls_for(event_type)
    if urls:
        background_tasks.add_task(
            dispatcher.dispatch, urls, event_type, serialize_product(product)
        )


# ==================== Products ====================


@router.post("/products", status_code=201, dependencies=[Depends(require_admin)])
async def create_product(
    request: CreateProductRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> dict[str, Any]:
    """Create a product and fire ``product_created``."""
    shop = ShopService(db)
    if await shop.get_product_by_sku(request.sku):
        raise HTTPException(status_code=409, detail="SKU already exists")

    try:
        product = await shop.create_product(**request.model_dump())
    except IntegrityError as e:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Product already exists") from e

    await _announce(db, background_tasks, dispatcher, WebhookEventType.PRODUCT_CREATED, product)
    return serialize_product(product)


@router.patch("/products/{product_id}", dependencies=[Depends(require_admin)])
async def update_product(
    product_id: int,
    request: UpdateProductRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> dict[str, Any]:
    """Update a product and fire ``product_updated``."""
    # Only description and image_url may be cleared
    changes = {
        field: value
        for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field in ("description", "image_url")
    }
    shop = ShopService(db)
    product = await shop.update_product(product_id, changes)

    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    await _announce(db, background_tasks, dispatcher, WebhookEventType.PRODUCT_UPDATED, product)
    return serialize_product(product)


# ==================== Orders ====================


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Get order status, payment result and items."""
    order = await ShopService(db).get_order(order_id)

    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    return serialize_order(order)
