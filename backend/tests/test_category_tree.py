# tests/test_category_tree.py
# 品类树服务测试

import asyncio
from unittest.mock import patch

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.category import Category
from app.services.category_tree import (
    CategoryTreeService,
    build_children_map,
    compute_exclusion_closure,
    descendant_depths,
    expand_descendants,
)


PAIRS = [(1, None), (2, 1), (3, 1), (4, 2), (5, 0)]


class TestTreeFunctions:
    """纯函数"""

    def test_exclusion_closure_is_transitive(self):
        closure = compute_exclusion_closure(PAIRS, [1])

        assert closure == {1, 2, 3, 4}

    def test_exclusion_closure_is_idempotent(self):
        assert compute_exclusion_closure(PAIRS, [2]) == compute_exclusion_closure(PAIRS, [2])

    def test_parent_zero_means_root(self):
        assert 5 not in build_children_map(PAIRS).get(0, [])
        assert compute_exclusion_closure(PAIRS, [5]) == {5}

    def test_cycle_terminates(self):
        cyclic = [(1, 3), (2, 1), (3, 2)]

        assert expand_descendants([1], build_children_map(cyclic)) == {1, 2, 3}

    def test_descendant_depths(self):
        assert descendant_depths(1, build_children_map(PAIRS)) == {2: 1, 3: 1, 4: 2}


class TestCategoryReads:
    """树读取与缓存"""

    @pytest.mark.asyncio
    async def test_full_tree_marks_excluded_descendants(self, category_tree):
        service = CategoryTreeService()
        await service.set_exclusion(category_tree, 2, "Restricted")

        tree = await service.get_full_tree(category_tree)
        excluded = {n["id"] for n in tree["categories"] if n["is_excluded"]}

        assert tree["total"] == 5
        assert excluded == {2, 4}

    @pytest.mark.asyncio
    async def test_concurrent_cold_requests_scan_once(self, category_tree):
        service = CategoryTreeService()
        original = service._fetch_tree_rows
        calls = []

        async def counting_fetch(session):
            calls.append(1)
            await asyncio.sleep(0.01)
            return await original(session)

        with patch.object(service, "_fetch_tree_rows", side_effect=counting_fetch):
            first, second = await asyncio.gather(
                service.get_full_tree(category_tree),
                service.get_full_tree(category_tree),
            )

        assert len(calls) == 1
        assert first is second

    @pytest.mark.asyncio
    async def test_roots_and_children(self, category_tree):
        service = CategoryTreeService()

        roots = await service.get_roots(category_tree)
        children = await service.get_children(category_tree, 1)

        assert [n["id"] for n in roots] == [1, 5]
        assert [n["id"] for n in children] == [2, 3]
        assert roots[1]["parent"] is None

    @pytest.mark.asyncio
    async def test_detail(self, products):
        service = CategoryTreeService()
        await service.set_exclusion(products, 1, "Seasonal")

        detail = await service.get_detail(products, 4)

        assert [b["id"] for b in detail["breadcrumb"]] == [1, 2]
        assert detail["is_excluded"] is True
        assert detail["excluded_directly"] is False
        assert detail["real_product_count"] == 1

        root = await service.get_detail(products, 1)
        assert root["excluded_reason"] == "Seasonal"
        assert root["total_products_in_tree"] == 3
        assert [c.id for c in root["children"]] == [2, 3]

    @pytest.mark.asyncio
    async def test_detail_missing(self, category_tree):
        with pytest.raises(NotFoundError):
            await CategoryTreeService().get_detail(category_tree, 99)

    @pytest.mark.asyncio
    async def test_list_filters_by_exclusion(self, category_tree):
        service = CategoryTreeService()
        await service.set_exclusion(category_tree, 2)

        page, parent_names, excluded_ids = await service.list_categories(category_tree, excluded="excluded")

        assert [c.id for c in page.items] == [4, 2]
        assert parent_names == {1: "Electronics", 2: "Phones"}
        assert excluded_ids == {2, 4}


class TestCategoryWrites:
    """排序、移动、修改"""

    @pytest.mark.asyncio
    async def test_reparent_updates_levels_and_flags(self, category_tree):
        service = CategoryTreeService()

        await service.reorder(category_tree, 2, new_parent_id=5, new_order=0)
        category_tree.expire_all()

        phones = await category_tree.get(Category, 2)
        cases = await category_tree.get(Category, 4)
        home = await category_tree.get(Category, 5)
        electronics = await category_tree.get(Category, 1)

        assert phones.parent == 5
        assert phones.level == 1
        assert cases.level == 2
        assert home.has_children is True
        assert electronics.has_children is True  # Laptops 还在

    @pytest.mark.asyncio
    async def test_move_to_root(self, category_tree):
        service = CategoryTreeService()

        await service.reorder(category_tree, 2, new_parent_id=None, new_order=5)
        category_tree.expire_all()

        phones = await category_tree.get(Category, 2)
        cases = await category_tree.get(Category, 4)
        assert phones.parent is None
        assert phones.level == 0
        assert cases.level == 1

    @pytest.mark.asyncio
    async def test_same_parent_reorder_shifts_siblings(self, category_tree):
        service = CategoryTreeService()

        await service.reorder(category_tree, 3, new_parent_id=1, new_order=0)
        category_tree.expire_all()

        assert (await category_tree.get(Category, 3)).order_number == 0
        assert (await category_tree.get(Category, 2)).order_number == 1

    @pytest.mark.asyncio
    async def test_refuses_move_under_own_descendant(self, category_tree):
        service = CategoryTreeService()

        with pytest.raises(ValidationError):
            await service.reorder(category_tree, 1, new_parent_id=4)

        category_tree.expire_all()
        assert (await category_tree.get(Category, 1)).parent is None

    @pytest.mark.asyncio
    async def test_missing_parent(self, category_tree):
        with pytest.raises(NotFoundError):
            await CategoryTreeService().reorder(category_tree, 3, new_parent_id=99)

    @pytest.mark.asyncio
    async def test_write_invalidates_cached_tree(self, category_tree):
        service = CategoryTreeService()
        before = await service.get_full_tree(category_tree)

        await service.reorder(category_tree, 3, new_parent_id=5, new_order=0)
        after = await service.get_full_tree(category_tree)

        assert after is not before
        laptops = next(n for n in after["categories"] if n["id"] == 3)
        assert laptops["parent"] == 5

    @pytest.mark.asyncio
    async def test_exclusion_toggle_invalidates_closure(self, category_tree):
        service = CategoryTreeService()
        assert await service.get_excluded_ids(category_tree) == frozenset()

        await service.set_exclusion(category_tree, 1)
        assert 4 in await service.get_excluded_ids(category_tree)

        assert await service.remove_exclusion(category_tree, 1) is True
        assert await service.get_excluded_ids(category_tree) == frozenset()

    @pytest.mark.asyncio
    async def test_update_fields(self, category_tree):
        service = CategoryTreeService()

        category = await service.update_category(
            category_tree, 3, {"category_name_en": "Notebooks", "display": False, "unknown": 1}
        )

        assert category.category_name_en == "Notebooks"
        assert category.display is False

    @pytest.mark.asyncio
    async def test_update_parent_goes_through_move(self, category_tree):
        service = CategoryTreeService()

        with pytest.raises(ValidationError):
            await service.update_category(category_tree, 1, {"parent": 2})

        category = await service.update_category(category_tree, 4, {"parent": 3})
        assert category.level == 2

    @pytest.mark.asyncio
    async def test_update_without_known_fields(self, category_tree):
        with pytest.raises(ValidationError):
            await CategoryTreeService().update_category(category_tree, 3, {"slug": "x"})
