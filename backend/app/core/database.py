# app/core/database.py
# 数据库连接模块
#
# 功能说明：
# 1. 创建 SQLAlchemy 异步引擎（asyncpg 驱动）
# 2. 提供声明式模型基类 Base
# 3. 提供 FastAPI 依赖注入函数 get_db
# 4. row_to_dict - ORM 对象转 dict（接口响应使用）
#
# 使用方法：
#   from app.core.database import get_db, Base, async_session_maker
#
#   @router.get("/items")
#   async def list_items(session: AsyncSession = Depends(get_db)):
#       ...

from decimal import Decimal
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """所有数据模型的基类"""
    pass


def row_to_dict(obj: Base) -> dict[str, Any]:
    """ORM 对象 → dict（Numeric 转为 float，便于直接序列化为 JSON）"""
    data = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.key)
        data[column.key] = float(value) if isinstance(value, Decimal) else value
    return data


# 异步引擎
# pool_pre_ping: 每次取连接前检测是否可用，避免数据库重启后拿到失效连接
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# 会话工厂
# expire_on_commit=False: 提交后对象属性仍可访问（序列化响应时需要）
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话（FastAPI 依赖注入）

    请求结束时自动关闭会话；未提交的修改会被回滚
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """根据模型创建所有表（仅开发环境使用，生产环境由 DBA 维护表结构）"""
    import app.models  # noqa: F401  注册所有模型

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("数据库表结构已同步")


async def close_db() -> None:
    """关闭连接池"""
    await engine.dispose()
