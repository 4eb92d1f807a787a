# app/services/category_tree.py
# 品类树服务
#
# 功能说明：
# 1. 读取：根品类、某个品类的直接子品类、全量树（带缓存与请求合并）
# 2. 排除闭包：直接排除的品类及其全部后代
# 3. 写入：同级排序 / 移动到新父品类、字段更新、标记/取消排除
# 4. 详情：面包屑、子品类、排除原因、商品数（自身 / 整棵子树）
#
# 缓存：
#   全量树和排除闭包共用一个进程内缓存（TTL = CATEGORY_TREE_CACHE_TTL），
#   所有修改 parent 或 excluded_categories 的写操作提交后都会使其失效
#
# 防环：
#   数据库不约束 parent 不成环，所有遍历都带 visited 集合；
#   移动操作拒绝把品类挂到自己的后代下面
#
# 使用方法：
#   from app.services.category_tree import category_tree_service
#
#   tree = await category_tree_service.get_full_tree(session)
#   await category_tree_service.reorder(session, category_id=5, new_parent_id=None, new_order=0)

from collections import defaultdict
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import AsyncTTLCache
from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging import get_logger
from app.models.category import Category, ExcludedCategory
from app.models.product import Product
from app.services.pagination import CursorPage, paginate

logger = get_logger(__name__)

TREE_KEY = "tree"
EXCLUDED_KEY = "excluded"

# PATCH 允许修改的字段
UPDATABLE_FIELDS = (
    "category_name",
    "category_name_en",
    "category_name_zh",
    "main_image",
    "display",
    "show_in_navbar",
    "order_number",
    "parent",
    "tax_air",
    "tax_sea",
    "tax_min_qty_air",
    "tax_min_qty_sea",
    "cbm_rate",
    "shipping_surcharge_percent",
    "air_shipping_rate",
)


# ==================== 纯函数 ====================

def normalize_parent(parent: Optional[int]) -> Optional[int]:
    """parent 为 0 或 None 都表示根品类，统一为 None"""
    return None if not parent else parent


def build_children_map(pairs: Iterable[tuple[int, Optional[int]]]) -> dict[int, list[int]]:
    """由 (id, parent) 构建 parent → [child ids]"""
    children: dict[int, list[int]] = defaultdict(list)
    for category_id, parent in pairs:
        parent = normalize_parent(parent)
        if parent is not None:
            children[parent].append(category_id)
    return children


def expand_descendants(
    seeds: Iterable[int],
    children_map: dict[int, list[int]],
    include_seeds: bool = True,
) -> set[int]:
    """
    从 seeds 出发收集全部后代

    parent 链成环时每个节点只访问一次，不会死循环
    """
    seeds = list(seeds)
    visited = set(seeds)
    frontier = list(seeds)
    found: set[int] = set(seeds) if include_seeds else set()

    while frontier:
        current = frontier.pop()
        for child in children_map.get(current, ()):
            if child in visited:
                continue
            visited.add(child)
            found.add(child)
            frontier.append(child)
    return found


def compute_exclusion_closure(
    pairs: Iterable[tuple[int, Optional[int]]],
    excluded_ids: Iterable[int],
) -> frozenset[int]:
    """直接排除的品类 + 它们的全部后代"""
    return frozenset(expand_descendants(excluded_ids, build_children_map(pairs)))


def descendant_depths(
    root_id: int,
    children_map: dict[int, list[int]],
) -> dict[int, int]:
    """后代 id → 相对 root 的深度（子品类为 1），不包含 root 本身"""
    depths: dict[int, int] = {}
    visited = {root_id}
    frontier = [(root_id, 0)]

    while frontier:
        current, depth = frontier.pop()
        for child in children_map.get(current, ()):
            if child in visited:
                continue
            visited.add(child)
            depths[child] = depth + 1
            frontier.append((child, depth + 1))
    return depths


def _to_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def tree_node(category: Any, excluded: frozenset[int]) -> dict:
    """树节点：只保留树形控件和筛选下拉框需要的字段"""
    return {
        "id": category.id,
        "category_name": category.category_name,
        "category_name_en": category.category_name_en or None,
        "parent": normalize_parent(category.parent),
        "level": category.level,
        "has_children": bool(category.has_children) if category.has_children is not None else None,
        "main_image": category.main_image or None,
        "product_count": int(category.product_count or 0),
        "display": bool(category.display),
        "order_number": category.order_number,
        "is_excluded": category.id in excluded,
    }


class CategoryTreeService:
    """品类树服务"""

    def __init__(self, cache: Optional[AsyncTTLCache] = None):
        self.cache = cache or AsyncTTLCache("category_tree", ttl=settings.CATEGORY_TREE_CACHE_TTL)

    def invalidate(self) -> None:
        """写操作提交后调用，全量树和排除闭包一起失效"""
        self.cache.invalidate()

    # ==================== 排除闭包 ====================

    async def _fetch_parent_pairs(self, session: AsyncSession) -> list[tuple[int, Optional[int]]]:
        result = await session.execute(select(Category.id, Category.parent))
        return [(row.id, row.parent) for row in result.all()]

    async def _fetch_direct_excluded(self, session: AsyncSession) -> list[int]:
        result = await session.execute(select(ExcludedCategory.category_id))
        return list(result.scalars().all())

    async def _load_excluded(self, session: AsyncSession) -> frozenset[int]:
        pairs = await self._fetch_parent_pairs(session)
        direct = await self._fetch_direct_excluded(session)
        return compute_exclusion_closure(pairs, direct)

    async def get_excluded_ids(self, session: AsyncSession) -> frozenset[int]:
        """排除闭包（缓存）"""
        return await self.cache.get_or_load(EXCLUDED_KEY, lambda: self._load_excluded(session))

    # ==================== 读取 ====================

    async def _fetch_tree_rows(self, session: AsyncSession) -> tuple[list[Any], list[int]]:
        """全表扫描：所有品类（按 order_number）+ 直接排除的 id"""
        result = await session.execute(
            select(
                Category.id,
                Category.category_name,
                Category.category_name_en,
                Category.parent,
                Category.level,
                Category.has_children,
                Category.main_image,
                Category.product_count,
                Category.display,
                Category.order_number,
            ).order_by(Category.order_number.asc(), Category.id.asc())
        )
        rows = list(result.all())
        return rows, await self._fetch_direct_excluded(session)

    async def _load_tree(self, session: AsyncSession) -> dict:
        rows, direct = await self._fetch_tree_rows(session)
        excluded = compute_exclusion_closure(((r.id, r.parent) for r in rows), direct)
        categories = [tree_node(r, excluded) for r in rows]
        logger.info(f"[CategoryTree] 全量树已构建: {len(categories)} 个品类, {len(excluded)} 个已排除")
        return {"categories": categories, "total": len(categories)}

    async def get_full_tree(self, session: AsyncSession) -> dict:
        """
        全量树（mode=all）

        缓存未命中时并发请求只触发一次全表扫描，所有调用方拿到同一个结果对象
        """
        return await self.cache.get_or_load(TREE_KEY, lambda: self._load_tree(session))

    async def get_roots(self, session: AsyncSession) -> list[dict]:
        """根品类：parent 为 NULL 或 0"""
        result = await session.execute(
            select(Category)
            .where(or_(Category.parent.is_(None), Category.parent == 0))
            .order_by(Category.order_number.asc(), Category.id.asc())
        )
        excluded = await self.get_excluded_ids(session)
        return [tree_node(c, excluded) for c in result.scalars().all()]

    async def get_children(self, session: AsyncSession, parent_id: int) -> list[dict]:
        """某个品类的直接子品类（展开树节点时按需加载）"""
        result = await session.execute(
            select(Category)
            .where(Category.parent == parent_id)
            .order_by(Category.order_number.asc(), Category.id.asc())
        )
        excluded = await self.get_excluded_ids(session)
        return [tree_node(c, excluded) for c in result.scalars().all()]

    async def get_descendant_ids(
        self,
        session: AsyncSession,
        category_id: int,
        include_self: bool = True,
    ) -> set[int]:
        pairs = await self._fetch_parent_pairs(session)
        return expand_descendants([category_id], build_children_map(pairs), include_seeds=include_self)

    async def list_categories(
        self,
        session: AsyncSession,
        cursor: Optional[int] = None,
        page_size: Optional[int] = None,
        search: str = "",
        level: Optional[int] = None,
        display: Optional[str] = None,
        excluded: Optional[str] = None,
        parent_id: Optional[int] = None,
        has_image: Optional[str] = None,
    ) -> tuple[CursorPage, dict[int, str], frozenset[int]]:
        """
        品类平铺列表（游标分页）

        Args:
            display: "visible" / "hidden"
            excluded: "excluded" / "not_excluded"
            has_image: "yes" / "no"

        Returns:
            (分页结果, 父品类 id → 名称, 排除闭包)
        """
        stmt = select(Category)

        if search:
            stmt = stmt.where(or_(
                Category.category_name.contains(search),
                Category.category_name_en.contains(search),
                Category.category_name_zh.contains(search),
                Category.slug.contains(search),
            ))
        if level is not None:
            stmt = stmt.where(Category.level == level)
        if display == "visible":
            stmt = stmt.where(Category.display.is_(True))
        elif display == "hidden":
            stmt = stmt.where(Category.display.is_(False))
        if parent_id is not None:
            stmt = stmt.where(Category.parent == parent_id)
        if has_image == "yes":
            stmt = stmt.where(Category.main_image.is_not(None), Category.main_image != "")
        elif has_image == "no":
            stmt = stmt.where(or_(Category.main_image.is_(None), Category.main_image == ""))

        excluded_ids = await self.get_excluded_ids(session)
        if excluded == "excluded":
            stmt = stmt.where(Category.id.in_(sorted(excluded_ids)))
        elif excluded == "not_excluded" and excluded_ids:
            stmt = stmt.where(Category.id.not_in(sorted(excluded_ids)))

        page = await paginate(session, stmt, Category.id, cursor, page_size)

        parent_ids = {normalize_parent(c.parent) for c in page.items} - {None}
        parent_names: dict[int, str] = {}
        if parent_ids:
            result = await session.execute(select(Category).where(Category.id.in_(sorted(parent_ids))))
            parent_names = {p.id: p.display_name for p in result.scalars().all()}

        return page, parent_names, excluded_ids

    async def get_detail(self, session: AsyncSession, category_id: int) -> dict:
        """
        品类详情

        Raises:
            NotFoundError: 品类不存在
        """
        category = await session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        # 面包屑（从根到直接父品类），遇到环立即停止
        breadcrumb: list[dict] = []
        visited = {category_id}
        current = normalize_parent(category.parent)
        while current is not None and current not in visited:
            visited.add(current)
            parent = await session.get(Category, current)
            if parent is None:
                break
            breadcrumb.insert(0, {"id": parent.id, "name": parent.display_name})
            current = normalize_parent(parent.parent)

        children_result = await session.execute(
            select(Category)
            .where(Category.parent == category_id)
            .order_by(Category.order_number.asc(), Category.category_name.asc())
        )
        children = list(children_result.scalars().all())

        excluded_row = (
            await session.execute(
                select(ExcludedCategory).where(ExcludedCategory.category_id == category_id)
            )
        ).scalar_one_or_none()
        excluded_ids = await self.get_excluded_ids(session)

        tree_ids = await self.get_descendant_ids(session, category_id)
        real_count = await session.scalar(
            select(func.count(Product.id)).where(Product.category_id == category_id)
        )
        tree_count = await session.scalar(
            select(func.count(Product.id)).where(Product.category_id.in_(sorted(tree_ids)))
        )

        return {
            "category": category,
            "breadcrumb": breadcrumb,
            "children": children,
            "is_excluded": category_id in excluded_ids,
            "excluded_directly": excluded_row is not None,
            "excluded_reason": excluded_row.reason if excluded_row else None,
            "real_product_count": real_count or 0,
            "total_products_in_tree": tree_count or 0,
        }

    # ==================== 写入 ====================

    async def _shift_siblings(
        self,
        session: AsyncSession,
        parent: Optional[int],
        category_id: int,
        order: int,
    ) -> None:
        """同级中 order_number >= order 的品类（除自身）后移一位"""
        if parent is None:
            parent_condition = or_(Category.parent.is_(None), Category.parent == 0)
        else:
            parent_condition = Category.parent == parent

        await session.execute(
            update(Category)
            .where(
                parent_condition,
                Category.id != category_id,
                Category.order_number >= order,
            )
            .values(order_number=Category.order_number + 1)
            .execution_options(synchronize_session=False)
        )

    async def _move(
        self,
        session: AsyncSession,
        category: Category,
        new_parent: Optional[int],
        order: int,
    ) -> None:
        """
        同级排序或移动到新父品类（不提交）

        Raises:
            ValidationError: 移动到自身或自身的后代下
            NotFoundError: 新父品类不存在
        """
        old_parent = normalize_parent(category.parent)
        new_parent = normalize_parent(new_parent)

        if old_parent == new_parent:
            await self._shift_siblings(session, old_parent, category.id, order)
            category.order_number = order
            return

        pairs = await self._fetch_parent_pairs(session)
        children_map = build_children_map(pairs)

        new_level = 0
        if new_parent is not None:
            descendants = expand_descendants([category.id], children_map)
            if new_parent in descendants:
                raise ValidationError("Cannot move a category under its own descendant")
            parent_row = await session.get(Category, new_parent)
            if parent_row is None:
                raise NotFoundError("Parent category not found")
            new_level = (parent_row.level or 0) + 1

        await self._shift_siblings(session, new_parent, category.id, order)

        category.parent = new_parent
        category.level = new_level
        category.order_number = order

        # 后代层级按相对深度重算
        by_depth: dict[int, list[int]] = defaultdict(list)
        for descendant, depth in descendant_depths(category.id, children_map).items():
            by_depth[depth].append(descendant)
        for depth, ids in by_depth.items():
            await session.execute(
                update(Category)
                .where(Category.id.in_(ids))
                .values(level=new_level + depth)
                .execution_options(synchronize_session=False)
            )

        await session.flush()

        if old_parent is not None:
            remaining = await session.scalar(
                select(func.count(Category.id)).where(Category.parent == old_parent)
            )
            await session.execute(
                update(Category)
                .where(Category.id == old_parent)
                .values(has_children=bool(remaining))
                .execution_options(synchronize_session=False)
            )
        if new_parent is not None:
            await session.execute(
                update(Category)
                .where(Category.id == new_parent)
                .values(has_children=True)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            f"[CategoryTree] 品类 {category.id} 已移动: parent {old_parent} → {new_parent}, "
            f"level={new_level}, order={order}"
        )

    async def reorder(
        self,
        session: AsyncSession,
        category_id: int,
        new_parent_id: Optional[int],
        new_order: Optional[int] = None,
    ) -> None:
        """
        拖拽排序 / 移动（单个事务，提交后使缓存失效）

        Raises:
            NotFoundError: 品类或新父品类不存在
            ValidationError: 移动到自身的后代下
        """
        category = await session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        try:
            await self._move(session, category, new_parent_id, new_order or 0)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        self.invalidate()

    async def update_category(
        self,
        session: AsyncSession,
        category_id: int,
        fields: dict[str, Any],
    ) -> Category:
        """
        更新品类字段

        修改 parent 时走与拖拽相同的移动逻辑（层级、has_children、防环）

        Raises:
            ValidationError: 没有可更新的字段
            NotFoundError: 品类不存在
        """
        data = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not data:
            raise ValidationError("No valid fields to update")

        category = await session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")

        moving = "parent" in data and normalize_parent(data["parent"]) != normalize_parent(category.parent)
        new_parent = data.pop("parent", None)

        try:
            if moving:
                order = data.pop("order_number", None)
                if order is None:
                    order = category.order_number or 0
                await self._move(session, category, new_parent, order)
            for key, value in data.items():
                setattr(category, key, value)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        await session.refresh(category)
        self.invalidate()
        logger.info(f"[CategoryTree] 品类 {category_id} 已更新: {sorted(fields)}")
        return category

    async def set_exclusion(
        self,
        session: AsyncSession,
        category_id: int,
        reason: Optional[str] = None,
    ) -> ExcludedCategory:
        """标记为排除（已标记时更新原因）"""
        if await session.get(Category, category_id) is None:
            raise NotFoundError("Category not found")

        row = (
            await session.execute(
                select(ExcludedCategory).where(ExcludedCategory.category_id == category_id)
            )
        ).scalar_one_or_none()
        if row is None:
            row = ExcludedCategory(category_id=category_id, reason=reason)
            session.add(row)
        else:
            row.reason = reason

        await session.commit()
        await session.refresh(row)
        self.invalidate()
        logger.info(f"[CategoryTree] 品类 {category_id} 已标记排除")
        return row

    async def remove_exclusion(self, session: AsyncSession, category_id: int) -> bool:
        """
        取消排除

        Returns:
            bool: 原本是否处于直接排除状态
        """
        row = (
            await session.execute(
                select(ExcludedCategory).where(ExcludedCategory.category_id == category_id)
            )
        ).scalar_one_or_none()
        if row is None:
            return False

        await session.delete(row)
        await session.commit()
        self.invalidate()
        logger.info(f"[CategoryTree] 品类 {category_id} 已取消排除")
        return True


category_tree_service = CategoryTreeService()
