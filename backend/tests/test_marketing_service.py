# tests/test_marketing_service.py
# 首页运营内容测试

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models.marketing import FlashSaleProduct
from app.models.product import Product
from app.services.backend_client import CLEAR_HOME_CACHE_PATH
from app.services.marketing_service import marketing_service


def cache_clears(backend_calls):
    return sum(1 for path, _ in backend_calls if path == CLEAR_HOME_CACHE_PATH)


class TestSliders:
    """轮播"""

    @pytest.mark.asyncio
    async def test_new_slider_goes_last_and_clears_cache(self, db_session, backend_calls):
        first = await marketing_service.create_slider(db_session, {"text": "Summer"})
        second = await marketing_service.create_slider(db_session, {"text": "Winter", "btn_url": "/sale"})

        assert (first.order_number, second.order_number) == (1, 2)
        assert cache_clears(backend_calls) == 2

    @pytest.mark.asyncio
    async def test_update_and_delete(self, db_session):
        slider = await marketing_service.create_slider(db_session, {"text": "Old"})

        updated = await marketing_service.update_slider(db_session, slider.id, {"text": "New", "id": 99})
        assert updated.text == "New"
        assert updated.id == slider.id

        await marketing_service.delete_slider(db_session, slider.id)
        with pytest.raises(NotFoundError):
            await marketing_service.delete_slider(db_session, slider.id)

    @pytest.mark.asyncio
    async def test_update_requires_known_fields(self, db_session):
        slider = await marketing_service.create_slider(db_session, {"text": "Old"})

        with pytest.raises(ValidationError):
            await marketing_service.update_slider(db_session, slider.id, {"color": "red"})


class TestGridElements:
    """移动端网格元素"""

    @pytest.mark.asyncio
    async def test_elements_stack_downwards(self, db_session):
        first = await marketing_service.create_grid_element(db_session, {"main_image": "a.jpg"})
        second = await marketing_service.create_grid_element(
            db_session, {"main_image": "b.jpg", "width": 2, "actions": [{"type": "category", "id": 1}]},
        )

        assert (first["position_y"], second["position_y"]) == ("1", "2")
        assert second["width"] == "2"
        assert second["actions"] == [{"type": "category", "id": 1}]

        banners = await marketing_service.list_banners(db_session)
        assert len(banners["grids"]) == 1
        assert [e["id"] for e in banners["grids"][0]["elements"]] == [first["id"], second["id"]]

    @pytest.mark.asyncio
    async def test_update_stringifies_positions(self, db_session):
        element = await marketing_service.create_grid_element(db_session, {})

        updated = await marketing_service.update_grid_element(db_session, element["id"], {"position_x": 3})

        assert updated["position_x"] == "3"

    @pytest.mark.asyncio
    async def test_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            await marketing_service.delete_grid_element(db_session, 42)


class TestFlashSaleProducts:
    """闪购商品"""

    @pytest.mark.asyncio
    async def test_add_skips_existing(self, products, backend_calls):
        first = await marketing_service.add_flash_sale_products(products, 7, [1, 2])
        second = await marketing_service.add_flash_sale_products(products, 7, [2, 4, 4])

        assert (first["added"], first["skipped"]) == (2, 0)
        assert (second["added"], second["skipped"]) == (1, 2)
        rows = (await products.execute(select(FlashSaleProduct.r_product_id).where(FlashSaleProduct.r_flash_id == 7))).scalars().all()
        assert sorted(rows) == [1, 2, 4]
        assert cache_clears(backend_calls) == 2

    @pytest.mark.asyncio
    async def test_list_uses_usd_prices(self, products):
        await marketing_service.add_flash_sale_products(products, 7, [1, 4])

        result = await marketing_service.list_flash_sale_products(products, 7)

        prices = {p["id"]: p["price"] for p in result["products"]}
        assert result["total"] == 2
        assert prices == {1: 16.10, 4: 23.00}

    @pytest.mark.asyncio
    async def test_remove_clears_product_flag(self, products):
        await marketing_service.add_flash_sale_products(products, 7, [1, 2])

        result = await marketing_service.remove_flash_sale_products(products, 7, [1])

        products.expire_all()
        assert result["removed"] == 1
        assert (await products.get(Product, 1)).r_flash_id is None
        assert (await products.get(Product, 2)).r_flash_id == 7

    @pytest.mark.asyncio
    async def test_empty_ids_rejected(self, products):
        with pytest.raises(ValidationError):
            await marketing_service.add_flash_sale_products(products, 7, [])


class TestFlashSales:
    """闪购活动"""

    @pytest.mark.asyncio
    async def test_create_defaults(self, products, backend_calls):
        first = await marketing_service.create_flash_sale(products, {"title": "  Summer Deals!! 2024 "})
        second = await marketing_service.create_flash_sale(products, {"product_ids": [1, 2, 2]})

        assert first.slug == "summer-deals-2024"
        assert (first.color_1, first.slider_type, first.display) == ("#e24040", 1, False)
        assert first.end_time - datetime.utcnow() > timedelta(days=364)
        assert (first.order_number, second.order_number) == (1, 2)
        assert second.slug == "flash-sale"

        products.expire_all()
        assert (await products.get(Product, 1)).r_flash_id == second.id
        assert cache_clears(backend_calls) == 2

    @pytest.mark.asyncio
    async def test_list_counts_products(self, products):
        sale = await marketing_service.create_flash_sale(products, {"title": "A", "product_ids": [1, 4]})
        await marketing_service.create_flash_sale(products, {"title": "B"})

        result = await marketing_service.list_flash_sales(products)

        assert [(s["title"], s["product_count"]) for s in result["sales"]] == [("A", 2), ("B", 0)]
        detail = await marketing_service.get_flash_sale(products, sale.id)
        assert [p["id"] for p in detail["products"]] == [4, 1]

    @pytest.mark.asyncio
    async def test_update_regenerates_slug_and_resets_end_time(self, db_session):
        sale = await marketing_service.create_flash_sale(
            db_session, {"title": "Old", "end_time": datetime(2030, 1, 1)},
        )

        updated = await marketing_service.update_flash_sale(
            db_session, sale.id, {"title": "New Arrivals", "end_time": None, "discount": 15},
        )

        assert updated.slug == "new-arrivals"
        assert updated.end_time.year != 2030
        assert float(updated.discount) == 15

    @pytest.mark.asyncio
    async def test_delete_removes_memberships(self, products):
        sale = await marketing_service.create_flash_sale(products, {"title": "Gone", "product_ids": [1]})

        await marketing_service.delete_flash_sale(products, sale.id)

        products.expire_all()
        assert (await products.get(Product, 1)).r_flash_id is None
        remaining = (await products.execute(select(FlashSaleProduct))).scalars().all()
        assert remaining == []
        with pytest.raises(NotFoundError):
            await marketing_service.get_flash_sale(products, sale.id)
