# app/services/marketing_service.py
# 首页运营内容服务
#
# 功能说明：
# 1. 轮播（sliders）：列表、新建（排在最后）、修改、删除
# 2. 移动端网格（grids type=Mobile）及网格元素：列表、新建（放在最下方）、修改、删除
# 3. 闪购活动：列表（含商品数）、新建、详情、修改、删除
# 4. 闪购商品：列表（美元价格）、批量加入、批量移除
#
# 缓存约定：
#   以上所有写操作提交后都会通知旧后端清理 App 首页缓存（尽力而为，失败只记日志）
#
# 使用方法：
#   from app.services.marketing_service import marketing_service
#
#   banners = await marketing_service.list_banners(session)
#   sale = await marketing_service.create_flash_sale(session, {"title": "Summer Deals"})
#   result = await marketing_service.add_flash_sale_products(session, flash_id=3, product_ids=[1, 2])

import re
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import row_to_dict
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging import get_logger
from app.models.marketing import FlashSale, FlashSaleProduct, Grid, GridElement, Slider
from app.models.product import Product
from app.services.backend_client import BackendClient, backend_client
from app.services.pricing import compute_app_price, pricing_service

logger = get_logger(__name__)

MOBILE_GRID_TYPE = "Mobile"

SLIDER_FIELDS = ("text", "btn_text", "btn_url", "main_image", "order_number", "r_store_id")
GRID_ELEMENT_FIELDS = ("position_x", "position_y", "width", "height", "main_image", "actions")
FLASH_SALE_FIELDS = (
    "color_1", "color_2", "color_3", "slider_type", "start_time",
    "display", "discount", "r_store_id", "order_number",
)
FLASH_SALE_DEFAULT_DURATION = timedelta(days=365)


def slugify(title: str) -> str:
    """小写，非字母数字的连续字符替换为 -，去掉首尾的 -"""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def _max_position(values: list[Optional[str]]) -> int:
    """position_y 以字符串存储，非数字的值忽略"""
    numbers = [int(v) for v in values if v is not None and str(v).strip().isdigit()]
    return max(numbers, default=0)


class MarketingService:
    """首页运营内容服务"""

    def __init__(self, backend: Optional[BackendClient] = None):
        self.backend = backend or backend_client

    async def _after_write(self) -> None:
        await self.backend.clear_home_cache()

    # ==================== 轮播 ====================

    async def list_banners(self, session: AsyncSession) -> dict:
        """轮播 + 移动端网格（含元素）"""
        sliders = (
            await session.execute(select(Slider).order_by(Slider.order_number.asc(), Slider.id.asc()))
        ).scalars().all()
        grids = (
            await session.execute(
                select(Grid).where(Grid.type == MOBILE_GRID_TYPE).order_by(Grid.id.asc())
            )
        ).scalars().all()

        elements_by_grid: dict[int, list[dict]] = {g.id: [] for g in grids}
        if grids:
            elements = (
                await session.execute(
                    select(GridElement)
                    .where(GridElement.r_grid_id.in_([g.id for g in grids]))
                    .order_by(GridElement.r_grid_id.asc(), GridElement.id.asc())
                )
            ).scalars().all()
            for element in elements:
                elements_by_grid[element.r_grid_id].append(self._element_dict(element))

        return {
            "sliders": [row_to_dict(s) for s in sliders],
            "grids": [
                {**row_to_dict(g), "elements": elements_by_grid.get(g.id, [])}
                for g in grids
            ],
        }

    async def create_slider(self, session: AsyncSession, data: dict[str, Any]) -> Slider:
        """新建轮播，order_number 取同店铺最大值 + 1"""
        store_id = data.get("r_store_id") or 1
        max_order = await session.scalar(
            select(func.coalesce(func.max(Slider.order_number), 0)).where(Slider.r_store_id == store_id)
        )
        slider = Slider(
            r_store_id=store_id,
            text=data.get("text") or "",
            btn_text=data.get("btn_text") or "",
            btn_url=data.get("btn_url") or "",
            main_image=data.get("main_image") or None,
            order_number=int(max_order or 0) + 1,
        )
        session.add(slider)
        await session.commit()
        await session.refresh(slider)

        logger.info(f"[Marketing] 新建轮播 {slider.id} (order={slider.order_number})")
        await self._after_write()
        return slider

    async def update_slider(self, session: AsyncSession, slider_id: int, data: dict[str, Any]) -> Slider:
        slider = await session.get(Slider, slider_id)
        if slider is None:
            raise NotFoundError("Slider not found")

        changes = {k: v for k, v in data.items() if k in SLIDER_FIELDS}
        if not changes:
            raise ValidationError("No valid fields to update")
        for key, value in changes.items():
            setattr(slider, key, value)

        await session.commit()
        await session.refresh(slider)
        await self._after_write()
        return slider

    async def delete_slider(self, session: AsyncSession, slider_id: int) -> None:
        slider = await session.get(Slider, slider_id)
        if slider is None:
            raise NotFoundError("Slider not found")

        await session.delete(slider)
        await session.commit()
        logger.info(f"[Marketing] 删除轮播 {slider_id}")
        await self._after_write()

    # ==================== 网格元素 ====================

    @staticmethod
    def _element_dict(element: GridElement) -> dict:
        data = row_to_dict(element)
        data["actions"] = element.actions or []
        return data

    async def list_grid_elements(self, session: AsyncSession) -> list[dict]:
        """移动端网格的全部元素"""
        result = await session.execute(
            select(GridElement)
            .join(Grid, Grid.id == GridElement.r_grid_id)
            .where(Grid.type == MOBILE_GRID_TYPE)
            .order_by(GridElement.r_grid_id.asc(), GridElement.id.asc())
        )
        return [self._element_dict(e) for e in result.scalars().all()]

    async def _mobile_grid(self, session: AsyncSession) -> Grid:
        """找到移动端网格，不存在时创建"""
        grid = (
            await session.execute(
                select(Grid).where(Grid.type == MOBILE_GRID_TYPE).order_by(Grid.id.asc()).limit(1)
            )
        ).scalar_one_or_none()
        if grid is None:
            grid = Grid(r_store_id=1, is_main=True, type=MOBILE_GRID_TYPE)
            session.add(grid)
            await session.flush()
            logger.info(f"[Marketing] 已创建移动端网格 {grid.id}")
        return grid

    async def create_grid_element(self, session: AsyncSession, data: dict[str, Any]) -> dict:
        """新建网格元素，放在现有元素的最下方"""
        grid = await self._mobile_grid(session)
        positions = (
            await session.execute(select(GridElement.position_y).where(GridElement.r_grid_id == grid.id))
        ).scalars().all()

        element = GridElement(
            r_grid_id=grid.id,
            position_x="0",
            position_y=str(_max_position(list(positions)) + 1),
            width=str(data.get("width") or "1"),
            height=str(data.get("height") or "1"),
            main_image=data.get("main_image") or None,
            actions=data.get("actions") or None,
        )
        session.add(element)
        await session.commit()
        await session.refresh(element)

        logger.info(f"[Marketing] 新建网格元素 {element.id} (grid={grid.id}, y={element.position_y})")
        await self._after_write()
        return self._element_dict(element)

    async def update_grid_element(self, session: AsyncSession, element_id: int, data: dict[str, Any]) -> dict:
        element = await session.get(GridElement, element_id)
        if element is None:
            raise NotFoundError("Grid element not found")

        changes = {k: v for k, v in data.items() if k in GRID_ELEMENT_FIELDS}
        if not changes:
            raise ValidationError("No valid fields to update")
        for key, value in changes.items():
            if key in ("position_x", "position_y", "width", "height") and value is not None:
                value = str(value)
            setattr(element, key, value)

        await session.commit()
        await session.refresh(element)
        await self._after_write()
        return self._element_dict(element)

    async def delete_grid_element(self, session: AsyncSession, element_id: int) -> None:
        element = await session.get(GridElement, element_id)
        if element is None:
            raise NotFoundError("Grid element not found")

        await session.delete(element)
        await session.commit()
        logger.info(f"[Marketing] 删除网格元素 {element_id}")
        await self._after_write()

    # ==================== 闪购活动 ====================

    async def _get_flash_sale(self, session: AsyncSession, flash_id: int) -> FlashSale:
        sale = await session.get(FlashSale, flash_id)
        if sale is None:
            raise NotFoundError("Flash sale not found")
        return sale

    async def list_flash_sales(self, session: AsyncSession) -> dict:
        """全部闪购活动（按 order_number），附带商品数"""
        sales = (
            await session.execute(select(FlashSale).order_by(FlashSale.order_number.asc(), FlashSale.id.asc()))
        ).scalars().all()
        counts = dict(
            (
                await session.execute(
                    select(FlashSaleProduct.r_flash_id, func.count()).group_by(FlashSaleProduct.r_flash_id)
                )
            ).all()
        )

        return {
            "sales": [{**row_to_dict(s), "product_count": counts.get(s.id, 0)} for s in sales],
            "total": len(sales),
        }

    async def create_flash_sale(self, session: AsyncSession, data: dict[str, Any]) -> FlashSale:
        """
        新建闪购活动

        - slug 由标题生成
        - end_time 未传时为一年后
        - order_number 取最大值 + 1
        - product_ids 可选，直接加入活动
        """
        title = data.get("title") or ""
        max_order = await session.scalar(select(func.coalesce(func.max(FlashSale.order_number), 0)))

        sale = FlashSale(
            title=title,
            slug=slugify(title or "flash-sale"),
            end_time=data.get("end_time") or datetime.utcnow() + FLASH_SALE_DEFAULT_DURATION,
            order_number=int(max_order or 0) + 1,
            created_by=data.get("created_by"),
        )
        for field in FLASH_SALE_FIELDS:
            if field != "order_number" and data.get(field) is not None:
                setattr(sale, field, data[field])

        product_ids = list(dict.fromkeys(data.get("product_ids") or []))
        try:
            session.add(sale)
            await session.flush()
            if product_ids:
                session.add_all(FlashSaleProduct(r_flash_id=sale.id, r_product_id=pid) for pid in product_ids)
                await session.execute(
                    update(Product)
                    .where(Product.id.in_(product_ids))
                    .values(r_flash_id=sale.id)
                    .execution_options(synchronize_session=False)
                )
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        await session.refresh(sale)

        logger.info(f"[Marketing] 新建闪购 {sale.id} ({sale.slug})，商品 {len(product_ids)} 个")
        await self._after_write()
        return sale

    async def get_flash_sale(self, session: AsyncSession, flash_id: int) -> dict:
        """
        闪购详情及其商品

        Raises:
            NotFoundError: 活动不存在
        """
        sale = await self._get_flash_sale(session, flash_id)
        products = await self._flash_sale_product_rows(session, flash_id)
        return {"sale": row_to_dict(sale), "products": products}

    async def update_flash_sale(self, session: AsyncSession, flash_id: int, data: dict[str, Any]) -> FlashSale:
        """
        修改闪购活动，只更新提交的字段

        修改标题时 slug 随之重新生成；end_time 显式传空时重置为一年后
        """
        sale = await self._get_flash_sale(session, flash_id)

        if data.get("title") is not None:
            sale.title = data["title"]
            sale.slug = slugify(data["title"])
        if "end_time" in data:
            sale.end_time = data["end_time"] or datetime.utcnow() + FLASH_SALE_DEFAULT_DURATION
        if "start_time" in data:
            sale.start_time = data["start_time"]
        for field in FLASH_SALE_FIELDS:
            if field != "start_time" and data.get(field) is not None:
                setattr(sale, field, data[field])
        sale.updated_at = datetime.utcnow()

        await session.commit()
        await session.refresh(sale)
        await self._after_write()
        return sale

    async def delete_flash_sale(self, session: AsyncSession, flash_id: int) -> None:
        """删除闪购活动：先移除商品关联并清空商品上的 r_flash_id"""
        sale = await self._get_flash_sale(session, flash_id)

        try:
            await session.execute(delete(FlashSaleProduct).where(FlashSaleProduct.r_flash_id == flash_id))
            await session.execute(
                update(Product)
                .where(Product.r_flash_id == flash_id)
                .values(r_flash_id=None)
                .execution_options(synchronize_session=False)
            )
            await session.delete(sale)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"[Marketing] 删除闪购 {flash_id}")
        await self._after_write()

    # ==================== 闪购商品 ====================

    async def _flash_sale_product_rows(self, session: AsyncSession, flash_id: int) -> list[dict]:
        """闪购活动的商品（按商品名排序），价格换算为美元"""
        result = await session.execute(
            select(Product)
            .join(FlashSaleProduct, FlashSaleProduct.r_product_id == Product.id)
            .where(FlashSaleProduct.r_flash_id == flash_id)
            .order_by(Product.product_name.asc(), Product.id.asc())
        )
        products = result.scalars().all()
        config = await pricing_service.get_config(session)

        return [
            {
                "id": p.id,
                "title": p.display_name or p.product_name or f"#{p.id}",
                "price": compute_app_price(p.raw_price, config, p.currency_id),
                "discount_price": compute_app_price(p.sale_price, config, p.currency_id),
                "main_image": p.main_image,
                "quantity": p.product_qty_left,
                "status": p.product_status,
            }
            for p in products
        ]

    async def list_flash_sale_products(self, session: AsyncSession, flash_id: int) -> dict:
        products = await self._flash_sale_product_rows(session, flash_id)
        return {"products": products, "total": len(products)}

    async def add_flash_sale_products(
        self,
        session: AsyncSession,
        flash_id: int,
        product_ids: list[int],
    ) -> dict:
        """
        加入闪购，已在活动中的商品跳过

        Returns:
            dict: added, skipped
        """
        if not product_ids:
            raise ValidationError("product_ids array is required")

        existing = set(
            (
                await session.execute(
                    select(FlashSaleProduct.r_product_id).where(FlashSaleProduct.r_flash_id == flash_id)
                )
            ).scalars().all()
        )
        new_ids = [pid for pid in dict.fromkeys(product_ids) if pid not in existing]

        if new_ids:
            try:
                session.add_all(FlashSaleProduct(r_flash_id=flash_id, r_product_id=pid) for pid in new_ids)
                await session.execute(
                    update(Product)
                    .where(Product.id.in_(new_ids))
                    .values(r_flash_id=flash_id)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.info(f"[Marketing] 闪购 {flash_id} 加入 {len(new_ids)} 个商品")
        await self._after_write()
        return {"success": True, "added": len(new_ids), "skipped": len(product_ids) - len(new_ids)}

    async def remove_flash_sale_products(
        self,
        session: AsyncSession,
        flash_id: int,
        product_ids: list[int],
    ) -> dict:
        """移出闪购，并清空商品上指向该活动的 r_flash_id"""
        if not product_ids:
            raise ValidationError("product_ids array is required")

        try:
            await session.execute(
                delete(FlashSaleProduct).where(
                    FlashSaleProduct.r_flash_id == flash_id,
                    FlashSaleProduct.r_product_id.in_(product_ids),
                )
            )
            await session.execute(
                update(Product)
                .where(Product.id.in_(product_ids), Product.r_flash_id == flash_id)
                .values(r_flash_id=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"[Marketing] 闪购 {flash_id} 移出 {len(product_ids)} 个商品")
        await self._after_write()
        return {"success": True, "removed": len(product_ids)}


marketing_service = MarketingService()
