# app/services/pricing.py
# 定价换算
#
# 功能说明：
# 1. compute_app_price - 纯函数：原始价格 → App 展示的美元价格
# 2. PricingConfig - 加价百分比和汇率，每个请求加载一次后显式传入
# 3. pricing_service - 从 system_settings 读取/更新定价配置
#
# 换算公式：
#   美元价格 = round2(原价 × 汇率 × (1 + 加价% / 100))
#   currency_id == USD_CURRENCY_ID 时原价已是美元，跳过汇率
#
# 使用方法：
#   from app.services.pricing import pricing_service, compute_app_price
#
#   config = await pricing_service.get_config(session)
#   usd = compute_app_price(product.raw_price, config, product.currency_id)

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.logging import get_logger
from app.models.settings import SystemSetting

logger = get_logger(__name__)

MARKUP_KEY = "pricing.markup_percent"
EXCHANGE_RATE_KEY = "pricing.exchange_rate"

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class PricingConfig:
    """定价参数"""

    markup_percent: float
    exchange_rate: float

    @classmethod
    def default(cls) -> "PricingConfig":
        return cls(
            markup_percent=settings.DEFAULT_MARKUP_PERCENT,
            exchange_rate=settings.DEFAULT_EXCHANGE_RATE,
        )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def compute_app_price(
    price: Any,
    config: PricingConfig,
    currency_id: Optional[int] = None,
) -> Optional[float]:
    """
    计算 App 展示价格（美元）

    Args:
        price: 原始价格，可以是数字、Decimal 或数字字符串
        config: 定价参数
        currency_id: 商品币种，等于 USD_CURRENCY_ID 时不乘汇率

    Returns:
        float: 保留两位小数的美元价格；价格为空、非数字、无穷大或为 0 时返回 None

    示例：
        compute_app_price(100, PricingConfig(15, 0.14))          # 16.1
        compute_app_price(20, PricingConfig(15, 0.14), 6)        # 23.0
    """
    amount = _to_decimal(price)
    if amount is None or not amount.is_finite() or amount == 0:
        return None

    if currency_id != settings.USD_CURRENCY_ID:
        amount *= Decimal(str(config.exchange_rate))

    amount *= 1 + Decimal(str(config.markup_percent)) / 100
    return float(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


class PricingService:
    """定价配置的读取与更新"""

    async def get_config(self, session: AsyncSession) -> PricingConfig:
        """读取定价配置，缺失或格式错误的项使用默认值"""
        result = await session.execute(
            select(SystemSetting).where(SystemSetting.key.in_([MARKUP_KEY, EXCHANGE_RATE_KEY]))
        )
        values = {row.key: row.value for row in result.scalars().all()}
        default = PricingConfig.default()

        return PricingConfig(
            markup_percent=self._parse(values.get(MARKUP_KEY), default.markup_percent),
            exchange_rate=self._parse(values.get(EXCHANGE_RATE_KEY), default.exchange_rate),
        )

    async def update_config(
        self,
        session: AsyncSession,
        markup_percent: Optional[float] = None,
        exchange_rate: Optional[float] = None,
    ) -> PricingConfig:
        """
        更新定价配置（未传入的项保持不变）

        Raises:
            ValidationError: 加价为负数，或汇率不大于 0
        """
        if markup_percent is not None and markup_percent < 0:
            raise ValidationError("markup_percent must be >= 0")
        if exchange_rate is not None and exchange_rate <= 0:
            raise ValidationError("exchange_rate must be > 0")

        updates = {MARKUP_KEY: markup_percent, EXCHANGE_RATE_KEY: exchange_rate}
        for key, value in updates.items():
            if value is None:
                continue
            row = await session.get(SystemSetting, key)
            if row is None:
                session.add(SystemSetting(key=key, value=str(value), category="pricing"))
            else:
                row.value = str(value)

        await session.commit()
        config = await self.get_config(session)
        logger.info(
            f"[PricingService] 定价配置已更新: markup={config.markup_percent}% "
            f"rate={config.exchange_rate}"
        )
        return config

    @staticmethod
    def _parse(raw: Optional[str], fallback: float) -> float:
        if raw is None:
            return fallback
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"[PricingService] 定价配置格式错误，使用默认值: {raw!r}")
            return fallback


pricing_service = PricingService()
