# tests/test_api_catalog.py
# 品类 / 商品 / 定价 / 运营 / 通知 API 测试

import pytest

from app.services.backend_client import CLEAR_HOME_CACHE_PATH


class TestCategoriesAPI:
    """品类管理"""

    @pytest.mark.asyncio
    async def test_tree_modes(self, admin_client, category_tree):
        roots = await admin_client.get("/api/categories/tree")
        children = await admin_client.get("/api/categories/tree", params={"parent": 1})
        full = await admin_client.get("/api/categories/tree", params={"mode": "all"})

        assert [c["id"] for c in roots.json()["categories"]] == [1, 5]
        assert [c["id"] for c in children.json()["categories"]] == [2, 3]
        assert full.json()["total"] == 5

    @pytest.mark.asyncio
    async def test_exclusion_reflected_in_tree_and_list(self, admin_client, category_tree):
        excluded = await admin_client.put("/api/categories/2/exclusion", json={"reason": "Restricted"})
        full = await admin_client.get("/api/categories/tree", params={"mode": "all"})
        listed = await admin_client.get("/api/categories", params={"excluded": "excluded"})

        assert excluded.json() == {"category_id": 2, "is_excluded": True, "reason": "Restricted"}
        flagged = {c["id"] for c in full.json()["categories"] if c["is_excluded"]}
        assert flagged == {2, 4}
        assert [c["id"] for c in listed.json()["categories"]] == [4, 2]

        removed = await admin_client.delete("/api/categories/2/exclusion")
        assert removed.json()["is_excluded"] is False

    @pytest.mark.asyncio
    async def test_unexclude_under_excluded_ancestor_stays_excluded(self, admin_client, category_tree):
        await admin_client.put("/api/categories/1/exclusion", json={"reason": "Seasonal"})
        await admin_client.put("/api/categories/2/exclusion", json={"reason": "Restricted"})

        removed = await admin_client.delete("/api/categories/2/exclusion")

        assert removed.json() == {"category_id": 2, "is_excluded": True, "reason": None}

    @pytest.mark.asyncio
    async def test_list_pagination(self, admin_client, category_tree):
        first = await admin_client.get("/api/categories", params={"pageSize": 2})
        second = await admin_client.get(
            "/api/categories", params={"pageSize": 2, "cursor": first.json()["next_cursor"]},
        )

        assert [c["id"] for c in first.json()["categories"]] == [5, 4]
        assert first.json()["total"] == 5
        assert [c["id"] for c in second.json()["categories"]] == [3, 2]
        assert second.json()["total"] is None

    @pytest.mark.asyncio
    async def test_reorder_into_own_subtree_is_400(self, admin_client, category_tree):
        response = await admin_client.post(
            "/api/categories/reorder", json={"categoryId": 1, "newParentId": 4, "newOrder": 0},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_reorder_then_detail(self, admin_client, category_tree):
        moved = await admin_client.post(
            "/api/categories/reorder", json={"categoryId": 4, "newParentId": 3, "newOrder": 0},
        )
        detail = await admin_client.get("/api/categories/4")

        assert moved.json() == {"success": True}
        assert [b["name"] for b in detail.json()["breadcrumb"]] == ["Electronics", "Laptops"]
        assert detail.json()["category"]["level"] == 2

    @pytest.mark.asyncio
    async def test_patch_and_missing(self, admin_client, category_tree):
        patched = await admin_client.patch("/api/categories/3", json={"category_name_en": "Notebooks"})
        missing = await admin_client.get("/api/categories/99")
        missing_products = await admin_client.get("/api/categories/99/products")

        assert patched.json()["category_name_en"] == "Notebooks"
        assert missing.status_code == 404
        assert missing_products.status_code == 404

    @pytest.mark.asyncio
    async def test_category_products(self, admin_client, products):
        response = await admin_client.get("/api/categories/1/products")

        assert [p["id"] for p in response.json()["products"]] == [4, 2, 1]


class TestProductsAPI:

    @pytest.mark.asyncio
    async def test_filters(self, admin_client, products):
        response = await admin_client.get("/api/products", params={"categoryId": 2, "stock": "in_stock"})

        body = response.json()
        assert [p["id"] for p in body["products"]] == [4, 1]
        assert body["pricing"]["markup_percent"] == 15

    @pytest.mark.asyncio
    async def test_invalid_stock_value_is_400(self, admin_client, products):
        response = await admin_client.get("/api/products", params={"stock": "maybe"})

        assert response.status_code == 400


class TestPricingSettingsAPI:

    @pytest.mark.asyncio
    async def test_read_and_update(self, admin_client):
        before = await admin_client.get("/api/settings/pricing")
        updated = await admin_client.patch("/api/settings/pricing", json={"exchange_rate": 0.15})

        assert before.json() == {"markup_percent": 15, "exchange_rate": 0.14}
        assert updated.json() == {"markup_percent": 15, "exchange_rate": 0.15}

    @pytest.mark.asyncio
    async def test_negative_markup_is_400(self, admin_client):
        response = await admin_client.patch("/api/settings/pricing", json={"markup_percent": -5})

        assert response.status_code == 400


class TestMarketingAPI:

    @pytest.mark.asyncio
    async def test_banner_crud_clears_cache(self, admin_client, backend_calls):
        created = await admin_client.post("/api/banners", json={"text": "Summer", "btn_text": "Shop"})
        slider_id = created.json()["slider"]["id"]
        updated = await admin_client.put(f"/api/banners/{slider_id}", json={"text": "Autumn"})
        deleted = await admin_client.delete(f"/api/banners/{slider_id}")
        listed = await admin_client.get("/api/banners")

        assert created.status_code == 201
        assert updated.json()["slider"]["text"] == "Autumn"
        assert deleted.json() == {"success": True}
        assert listed.json()["sliders"] == []
        assert [path for path, _ in backend_calls] == [CLEAR_HOME_CACHE_PATH] * 3

    @pytest.mark.asyncio
    async def test_flash_sale_products(self, admin_client, products):
        added = await admin_client.post("/api/flash-sales/3/products", json={"product_ids": [1, 2]})
        removed = await admin_client.request("DELETE", "/api/flash-sales/3/products", json={"product_ids": [2]})
        listed = await admin_client.get("/api/flash-sales/3/products")

        assert added.json()["added"] == 2
        assert removed.json()["removed"] == 1
        assert [p["id"] for p in listed.json()["products"]] == [1]

    @pytest.mark.asyncio
    async def test_flash_sale_crud(self, admin_client, products):
        created = await admin_client.post("/api/flash-sales", json={"title": "Weekend Sale", "product_ids": [2]})
        sale_id = created.json()["sale"]["id"]
        updated = await admin_client.put(f"/api/flash-sales/{sale_id}", json={"display": True})
        detail = await admin_client.get(f"/api/flash-sales/{sale_id}")
        listed = await admin_client.get("/api/flash-sales")
        deleted = await admin_client.delete(f"/api/flash-sales/{sale_id}")
        missing = await admin_client.get(f"/api/flash-sales/{sale_id}")

        assert created.status_code == 201
        assert created.json()["sale"]["slug"] == "weekend-sale"
        assert updated.json()["sale"]["display"] is True
        assert [p["id"] for p in detail.json()["products"]] == [2]
        assert listed.json()["sales"][0]["product_count"] == 1
        assert deleted.json() == {"success": True}
        assert missing.status_code == 404


class TestNotificationsAPI:

    @pytest.mark.asyncio
    async def test_create_and_list(self, admin_client, order_factory):
        await order_factory(["processing"])

        created = await admin_client.post(
            "/api/notifications",
            json={"subject": "Flash sale", "body": "Today only", "notification_type": "promo"},
        )
        listed = await admin_client.get("/api/notifications", params={"type": "promo"})

        assert created.status_code == 201
        assert created.json()["reach"] == 1
        assert [n["subject"] for n in listed.json()["notifications"]] == ["Flash sale"]
        assert listed.json()["stats"]["broadcast"] == 1

    @pytest.mark.asyncio
    async def test_empty_subject_is_400(self, admin_client):
        response = await admin_client.post("/api/notifications", json={"subject": "", "body": "x"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_detail_and_delete(self, admin_client, order_factory):
        await order_factory(["processing"])
        created = await admin_client.post("/api/notifications", json={"subject": "Hello", "body": "All"})
        notification_id = created.json()["notification"]["id"]

        detail = await admin_client.get(f"/api/notifications/{notification_id}")
        deleted = await admin_client.delete(f"/api/notifications/{notification_id}")
        missing = await admin_client.get(f"/api/notifications/{notification_id}")

        assert detail.json()["recipient_stats"]["total"] == 1
        assert deleted.json() == {"success": True}
        assert missing.status_code == 404
