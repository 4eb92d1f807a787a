# app/services/product_service.py
# 商品列表服务
#
# 功能说明：
# 1. list_products - 商品目录（游标分页），支持搜索、品类子树、库存、排除品类筛选
# 2. list_category_products - 某个品类及其全部后代下的商品（游标分页）
# 3. 每个商品附带换算后的美元价格；第一页同时返回当前定价参数
#
# 搜索规则：
#   形如 CN-xxx 或 5 位以上纯数字时按商品编码前缀匹配（纯数字自动补 CN- 前缀），
#   否则在商品名、展示名、编码中模糊匹配
#
# 使用方法：
#   from app.services.product_service import product_service
#
#   result = await product_service.list_products(session, search="CN-1234", page_size=50)

import re
from typing import Any, Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.category import Category
from app.models.product import Product
from app.services.category_tree import CategoryTreeService, category_tree_service
from app.services.pagination import paginate
from app.services.pricing import PricingConfig, compute_app_price, pricing_service

logger = get_logger(__name__)

_PRODUCT_CODE_RE = re.compile(r"^CN-", re.IGNORECASE)
_DIGITS_RE = re.compile(r"^\d{5,}$")


def is_product_code_search(search: str) -> bool:
    """CN-xxx 或 5 位以上纯数字视为商品编码"""
    return bool(_PRODUCT_CODE_RE.match(search) or _DIGITS_RE.match(search))


def format_product(
    product: Product,
    config: PricingConfig,
    category_names: Optional[dict[int, str]] = None,
) -> dict[str, Any]:
    """商品 → 列表行（原始价格转 float，附带美元价格）"""
    category_names = category_names or {}
    return {
        "id": product.id,
        "product_code": product.product_code,
        "product_name": product.product_name,
        "display_name": product.display_name,
        "main_image": product.main_image,
        "origin_price": float(product.origin_price) if product.origin_price is not None else None,
        "product_price": float(product.product_price) if product.product_price is not None else None,
        "sale_price": float(product.sale_price) if product.sale_price is not None else None,
        "currency_id": product.currency_id,
        "category_id": product.category_id,
        "category_name": category_names.get(product.category_id) if product.category_id else None,
        "out_of_stock": product.out_of_stock,
        "product_status": product.product_status,
        "product_qty_left": product.product_qty_left,
        "r_flash_id": product.r_flash_id,
        "created_at": product.created_at,
        "usd_price": compute_app_price(product.raw_price, config, product.currency_id),
        "usd_sale_price": compute_app_price(product.sale_price, config, product.currency_id),
    }


class ProductService:
    """商品列表服务"""

    def __init__(self, tree: Optional[CategoryTreeService] = None):
        self.tree = tree or category_tree_service

    async def _category_names(self, session: AsyncSession, category_ids: Iterable[Optional[int]]) -> dict[int, str]:
        ids = {cid for cid in category_ids if cid}
        if not ids:
            return {}
        result = await session.execute(select(Category).where(Category.id.in_(sorted(ids))))
        return {c.id: c.display_name for c in result.scalars().all()}

    async def _page_response(
        self,
        session: AsyncSession,
        stmt,
        cursor: Optional[int],
        page_size: Optional[int],
    ) -> dict:
        page = await paginate(session, stmt, Product.id, cursor, page_size)
        config = await pricing_service.get_config(session)
        names = await self._category_names(session, (p.category_id for p in page.items))

        response: dict[str, Any] = {
            "products": [format_product(p, config, names) for p in page.items],
            "next_cursor": page.next_cursor,
            "has_more": page.has_more,
            "total": page.total,
        }
        if cursor is None:
            response["pricing"] = {
                "markup_percent": config.markup_percent,
                "exchange_rate": config.exchange_rate,
            }
        return response

    async def list_products(
        self,
        session: AsyncSession,
        cursor: Optional[int] = None,
        page_size: Optional[int] = None,
        search: str = "",
        category_id: Optional[int] = None,
        stock: Optional[str] = None,
        excluded: Optional[str] = None,
    ) -> dict:
        """
        商品目录

        Args:
            category_id: 筛选该品类及其全部后代
            stock: "in_stock" / "out_of_stock"
            excluded: "excluded" 只看排除品类下的商品 / "not_excluded" 排除掉它们
        """
        stmt = select(Product)

        search = (search or "").strip()
        if search:
            if is_product_code_search(search):
                term = f"CN-{search}" if search.isdigit() else search
                stmt = stmt.where(Product.product_code.startswith(term))
            else:
                stmt = stmt.where(or_(
                    Product.product_name.contains(search),
                    Product.display_name.contains(search),
                    Product.product_code.startswith(search),
                ))

        if category_id is not None:
            tree_ids = await self.tree.get_descendant_ids(session, category_id)
            stmt = stmt.where(Product.category_id.in_(sorted(tree_ids)))

        if stock == "in_stock":
            stmt = stmt.where(Product.out_of_stock == 0)
        elif stock == "out_of_stock":
            stmt = stmt.where(Product.out_of_stock == 1)

        if excluded in ("excluded", "not_excluded"):
            excluded_ids = await self.tree.get_excluded_ids(session)
            if excluded == "excluded":
                stmt = stmt.where(Product.category_id.in_(sorted(excluded_ids)))
            elif excluded_ids:
                stmt = stmt.where(or_(Product.category_id.is_(None), Product.category_id.not_in(sorted(excluded_ids))))

        return await self._page_response(session, stmt, cursor, page_size)

    async def list_category_products(
        self,
        session: AsyncSession,
        category_id: int,
        cursor: Optional[int] = None,
        page_size: Optional[int] = None,
        search: str = "",
    ) -> dict:
        """品类子树下的商品"""
        tree_ids = await self.tree.get_descendant_ids(session, category_id)
        stmt = select(Product).where(Product.category_id.in_(sorted(tree_ids)))
        if search:
            stmt = stmt.where(or_(
                Product.product_name.contains(search),
                Product.display_name.contains(search),
                Product.product_code.contains(search),
            ))
        return await self._page_response(session, stmt, cursor, page_size)


product_service = ProductService()
