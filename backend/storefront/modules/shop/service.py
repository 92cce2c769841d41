"""
Shop Service - Product, order and inventory management.
"""

from decimal import Decimal
from typing import Any

from loguru import logger
from slugify import slugify
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.models.shop import Order, Product


class ShopService:
    """
    Service for managing products, orders and stock.

    Usage:
        shop = ShopService(db_session)
        order = await shop.get_order(order_id)
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize shop service with database session."""
        self.db = db

    # ==================== Products ====================

    async def get_product(self, product_id: int) -> Product | None:
        """Get product by id."""
        return await self.db.get(Product, product_id)

    async def get_product_by_sku(self, sku: str) -> Product | None:
        """Get product by SKU."""
        query = select(Product).where(Product.sku == sku)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def create_product(
        self,
        name: str,
        sku: str,
        price: Decimal,
        description: str | None = None,
        image_url: str | None = None,
        stock_quantity: int = 0,
    ) -> Product:
        """Create new product. The slug is derived from the name and SKU."""
        product = Product(
            name=name,
            slug=slugify(f"{name}-{sku}"),
            sku=sku,
            price=price,
            description=description,
            image_url=image_url,
            stock_quantity=stock_quantity,
        )
        self.db.add(product)
        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def update_product(
        self,
        product_id: int,
        changes: dict[str, Any],
    ) -> Product | None:
        """
        Apply field changes to a product.

        Args:
            product_id: Product ID
            changes: Mapping of column name to new value

        Returns:
            Updated product or None if not found
        """
        product = await self.get_product(product_id)
        if not product:
            return None

        for field, value in changes.items():
            setattr(product, field, value)
        if "name" in changes:
            product.slug = slugify(f"{product.name}-{product.sku}")

        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def increment_stock(self, product_id: int, quantity: int) -> bool:
        """
        Atomically add ``quantity`` to a product's stock.

        Returns:
            True if the product exists
        """
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
        )
        return result.rowcount > 0

    async def return_stock(self, items: list[tuple[int, int]]) -> int:
        """
        Give the quantities of an order's items back to inventory.

        Args:
            items: (product_id, quantity) pairs

        Returns:
            Number of products restocked
        """
        restocked = 0
        for product_id, quantity in items:
            if await self.increment_stock(product_id, quantity):
                restocked += 1
            else:
                logger.warning(f"Stock return skipped: product {product_id} not found")
        await self.db.commit()
        return restocked

    # ==================== Orders ====================

    async def get_order(self, order_id: str) -> Order | None:
        """Get order by id, with its items loaded."""
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.id == order_id)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_order_status(self, order_id: str) -> str | None:
        """Read the stored status column of an order."""
        result = await self.db.execute(
            select(Order.order_status).where(Order.id == order_id)
        )
        status = result.scalar_one_or_none()
        return status.value if status is not None else None

    @staticmethod
    def stock_lines(order: Order) -> list[tuple[int, int]]:
        """(product_id, quantity) pairs for an order's items."""
        return [(item.product_id, item.quantity) for item in order.items]
