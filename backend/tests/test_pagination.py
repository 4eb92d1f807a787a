# tests/test_pagination.py
# 游标分页测试

import pytest
from sqlalchemy import select

from app.models.category import Category
from app.services.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, clamp_page_size, paginate


@pytest.fixture
async def many_categories(db_session):
    db_session.add_all([
        Category(id=i, category_name=f"Category {i}", level=0, order_number=i)
        for i in range(1, 13)
    ])
    await db_session.commit()
    return db_session


class TestClampPageSize:

    def test_default(self):
        assert clamp_page_size(None) == DEFAULT_PAGE_SIZE

    def test_upper_bound(self):
        assert clamp_page_size(500) == MAX_PAGE_SIZE

    def test_lower_bound(self):
        assert clamp_page_size(-3) == 1


class TestPaginate:
    """按 id 倒序的游标分页"""

    @pytest.mark.asyncio
    async def test_walks_all_rows_without_repeats(self, many_categories):
        seen = []
        cursor = None
        totals = []

        while True:
            page = await paginate(many_categories, select(Category), Category.id, cursor, 5)
            assert len(page.items) <= 5
            seen.extend(c.id for c in page.items)
            totals.append(page.total)
            if not page.has_more:
                break
            assert page.next_cursor == page.items[-1].id
            cursor = page.next_cursor

        assert seen == list(range(12, 0, -1))
        # 只有第一页带总数
        assert totals == [12, None, None]

    @pytest.mark.asyncio
    async def test_last_page_exactly_full(self, many_categories):
        first = await paginate(many_categories, select(Category), Category.id, None, 12)

        assert len(first.items) == 12
        assert first.has_more is False

    @pytest.mark.asyncio
    async def test_filters_apply_to_total(self, many_categories):
        stmt = select(Category).where(Category.id > 8)

        page = await paginate(many_categories, stmt, Category.id, None, 2)

        assert page.total == 4
        assert [c.id for c in page.items] == [12, 11]
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_empty_page(self, db_session):
        page = await paginate(db_session, select(Category), Category.id, None, 10)

        assert page.items == []
        assert page.next_cursor is None
        assert page.total == 0
