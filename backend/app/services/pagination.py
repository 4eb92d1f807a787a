# app/services/pagination.py
# 游标分页
#
# 功能说明：
# 按 id 倒序分页，游标为上一页最后一条的 id：
# 1. 有游标时追加 id < cursor 条件，不会重复返回已看过的行
# 2. 多取一条（page_size + 1）判断是否还有下一页
# 3. 只有第一页（没有游标）才计算总数，后续翻页不再 COUNT
#
# 使用方法：
#   page = await paginate(session, select(Category).where(...), Category.id, cursor, page_size)
#   page.items, page.next_cursor, page.has_more, page.total

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass
class CursorPage:
    items: list[Any] = field(default_factory=list)
    next_cursor: Optional[int] = None
    has_more: bool = False
    total: Optional[int] = None


def clamp_page_size(page_size: Optional[int]) -> int:
    """限制在 1..MAX_PAGE_SIZE，未传时使用默认值"""
    if not page_size:
        return DEFAULT_PAGE_SIZE
    return max(1, min(page_size, MAX_PAGE_SIZE))


async def paginate(
    session: AsyncSession,
    stmt: Select,
    id_column: Any,
    cursor: Optional[int] = None,
    page_size: Optional[int] = None,
) -> CursorPage:
    """
    执行游标分页查询

    Args:
        stmt: 已带筛选条件的查询（不要自带 order_by / limit）
        id_column: 排序和游标使用的主键列
        cursor: 上一页返回的 next_cursor
        page_size: 每页条数

    Returns:
        CursorPage: next_cursor 为本页最后一条的 id，空页为 None
    """
    size = clamp_page_size(page_size)

    total = None
    if cursor is None:
        total = await session.scalar(select(func.count()).select_from(stmt.subquery())) or 0

    page_stmt = stmt
    if cursor is not None:
        page_stmt = page_stmt.where(id_column < cursor)
    page_stmt = page_stmt.order_by(id_column.desc()).limit(size + 1)

    rows = list((await session.execute(page_stmt)).scalars().all())
    has_more = len(rows) > size
    items = rows[:size]

    return CursorPage(
        items=items,
        next_cursor=items[-1].id if items else None,
        has_more=has_more,
        total=total,
    )
