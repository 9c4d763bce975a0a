"""
Online Store — 商品サービス

カタログストアの管理系操作をゲートウェイ向けに公開する。
書き込みはコミット後に product/created / product/updated を発行する。
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .catalog import SqlCatalogStore
from .errors import TransientInfra
from .events import ProductCreated, ProductUpdated
from .models import Product, ProductRequest
from .protocols import CatalogStore
from .publisher import EventPublisher

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher,
        catalog: CatalogStore | None = None,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.catalog = catalog or SqlCatalogStore()

    async def list_products(self) -> list[Product]:
        async with self.session_factory() as session:
            try:
                return await self.catalog.list_products(session)
            except SQLAlchemyError as e:
                raise TransientInfra("failed to list products") from e

    async def get_product(self, product_id: int) -> Product:
        async with self.session_factory() as session:
            try:
                return await self.catalog.get_product(session, product_id)
            except SQLAlchemyError as e:
                raise TransientInfra("failed to get product") from e

    async def create_product(self, req: ProductRequest) -> Product:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    product = await self.catalog.create_product(session, req)
            except SQLAlchemyError as e:
                raise TransientInfra("failed to create product") from e

        logger.info("Product %d created: %s", product.id, product.name)
        await self.publisher.emit(ProductCreated(product_id=product.id, name=product.name))
        return product

    async def update_product(self, product_id: int, req: ProductRequest) -> Product:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    product = await self.catalog.update_product(session, product_id, req)
            except SQLAlchemyError as e:
                raise TransientInfra("failed to update product") from e

        logger.info("Product %d updated", product.id)
        await self.publisher.emit(ProductUpdated(product_id=product.id, name=product.name))
        return product
