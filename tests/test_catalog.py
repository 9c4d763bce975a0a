"""Tests for the catalog store."""

import pytest

from online_store.catalog import SqlCatalogStore
from online_store.errors import InsufficientStock, InvalidInput, NotFound
from online_store.models import ProductRequest


@pytest.fixture
def catalog():
    return SqlCatalogStore()


class TestReserveStock:
    @pytest.mark.asyncio
    async def test_decrements_and_returns_price(self, sessions, catalog, make_product):
        product = await make_product(price_cents=2999, stock=50)

        async with sessions() as session, session.begin():
            reservation = await catalog.reserve_stock(session, product.id, 2)

        assert reservation.unit_price_cents == 2999
        assert reservation.new_stock == 48
        assert reservation.product_name == product.name

        async with sessions() as session:
            assert (await catalog.get_product(session, product.id)).stock_quantity == 48

    @pytest.mark.asyncio
    async def test_exact_stock_goes_to_zero(self, sessions, catalog, make_product):
        product = await make_product(stock=3)

        async with sessions() as session, session.begin():
            reservation = await catalog.reserve_stock(session, product.id, 3)

        assert reservation.new_stock == 0

    @pytest.mark.asyncio
    async def test_insufficient_stock_leaves_stock_untouched(
        self, sessions, catalog, make_product, read_product
    ):
        product = await make_product(stock=2)

        with pytest.raises(InsufficientStock) as exc_info:
            async with sessions() as session, session.begin():
                await catalog.reserve_stock(session, product.id, 3)

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 3
        assert (await read_product(product.id)).stock_quantity == 2

    @pytest.mark.asyncio
    async def test_unknown_product(self, sessions, catalog):
        with pytest.raises(NotFound):
            async with sessions() as session, session.begin():
                await catalog.reserve_stock(session, 999, 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -5])
    async def test_rejects_non_positive_quantity(
        self, sessions, catalog, make_product, read_product, quantity
    ):
        product = await make_product(stock=5)

        with pytest.raises(InvalidInput):
            async with sessions() as session, session.begin():
                await catalog.reserve_stock(session, product.id, quantity)

        assert (await read_product(product.id)).stock_quantity == 5


class TestSetStock:
    @pytest.mark.asyncio
    async def test_sets_stock_unconditionally(self, sessions, catalog, make_product):
        product = await make_product(stock=50)

        async with sessions() as session, session.begin():
            updated = await catalog.set_stock(session, product.id, 7)

        assert updated.stock_quantity == 7
        assert updated.name == product.name

    @pytest.mark.asyncio
    async def test_negative_stock_rejected(self, sessions, catalog, make_product, read_product):
        product = await make_product(stock=50)

        with pytest.raises(InvalidInput):
            async with sessions() as session, session.begin():
                await catalog.set_stock(session, product.id, -1)

        assert (await read_product(product.id)).stock_quantity == 50

    @pytest.mark.asyncio
    async def test_unknown_product(self, sessions, catalog):
        with pytest.raises(NotFound):
            async with sessions() as session, session.begin():
                await catalog.set_stock(session, 404, 10)

    @pytest.mark.asyncio
    async def test_stock_never_negative_across_mixed_sequence(
        self, sessions, catalog, make_product, read_product
    ):
        product = await make_product(stock=5)
        operations = [("reserve", 3), ("reserve", 3), ("set", 4), ("reserve", 4),
                      ("reserve", 1), ("set", 2), ("reserve", 2), ("reserve", 1)]

        for op, amount in operations:
            try:
                async with sessions() as session, session.begin():
                    if op == "reserve":
                        await catalog.reserve_stock(session, product.id, amount)
                    else:
                        await catalog.set_stock(session, product.id, amount)
            except InsufficientStock:
                pass
            assert (await read_product(product.id)).stock_quantity >= 0

        assert (await read_product(product.id)).stock_quantity == 0


class TestProductAdmin:
    @pytest.mark.asyncio
    async def test_create_and_list_newest_first(self, sessions, catalog, make_product):
        first = await make_product(name="First")
        second = await make_product(name="Second")

        async with sessions() as session:
            products = await catalog.list_products(session)

        assert [p.id for p in products] == [second.id, first.id]
        assert products[0].created_at is not None

    @pytest.mark.asyncio
    async def test_update_product(self, sessions, catalog, make_product):
        product = await make_product(price_cents=1000, stock=5)
        request = ProductRequest(
            name="Renamed", description="new", price_cents=1500, stock_quantity=9
        )

        async with sessions() as session, session.begin():
            updated = await catalog.update_product(session, product.id, request)

        assert updated.name == "Renamed"
        assert updated.price_cents == 1500
        assert updated.stock_quantity == 9

    @pytest.mark.asyncio
    async def test_update_unknown_product(self, sessions, catalog):
        request = ProductRequest(name="x", price_cents=1, stock_quantity=0)
        with pytest.raises(NotFound):
            async with sessions() as session, session.begin():
                await catalog.update_product(session, 1, request)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fields",
        [
            {"name": " ", "price_cents": 100, "stock_quantity": 1},
            {"name": "Book", "price_cents": 0, "stock_quantity": 1},
            {"name": "Book", "price_cents": 100, "stock_quantity": -1},
        ],
    )
    async def test_create_rejects_invalid_fields(self, sessions, catalog, fields):
        with pytest.raises(InvalidInput):
            async with sessions() as session, session.begin():
                await catalog.create_product(session, ProductRequest(**fields))
