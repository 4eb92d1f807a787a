# tests/conftest.py
# Pytest 配置文件
#
# 功能：
# 1. 内存 SQLite（aiosqlite + StaticPool），每个测试独立建表
# 2. 工作流状态字典、示例品类 / 订单等种子数据
# 3. 带会话 Cookie 的异步 API 客户端
# 4. 拦截所有对旧后端的 HTTP 请求（httpx.MockTransport）

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  注册所有模型
from app.core.config import settings
from app.core.database import Base, get_db
from app.core.security import SUPER_ADMIN_ROLE, SessionUser, create_session_token
from app.models.category import Category
from app.models.customer import Customer
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.services.backend_client import backend_client
from app.services.category_tree import category_tree_service
from app.services.order_status import ensure_workflow_statuses, get_status_by_key
from app.services.rbac import PERM_ITEM_STATUS_CHANGE


# ==================== 数据库 Fixtures ====================

@pytest.fixture
async def engine():
    """内存数据库引擎，StaticPool 保证所有会话共用同一个连接"""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    """数据库会话，工作流状态字典已初始化"""
    async with session_maker() as session:
        await ensure_workflow_statuses(session)
        yield session


@pytest.fixture
async def statuses(db_session):
    """status_key → OrderItemStatus"""
    keys = (
        "processing", "ordered", "shipped_to_wh", "received_to_wh",
        "shipped_to_leb", "received_to_leb", "delivered_to_customer",
        "cancelled", "refunded",
    )
    return {key: await get_status_by_key(db_session, key) for key in keys}


# ==================== 外部依赖隔离 ====================

@pytest.fixture
def backend_calls():
    """记录发往旧后端的请求（path, json）"""
    return []


@pytest.fixture(autouse=True)
def mock_backend(monkeypatch, backend_calls):
    """所有旧后端请求走 MockTransport，返回 200"""

    def handler(request: httpx.Request) -> httpx.Response:
        backend_calls.append((request.url.path, request.read().decode()))
        return httpx.Response(200, json={"success": True})

    monkeypatch.setattr(backend_client, "_transport", httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def reset_category_cache():
    """品类树缓存是进程级单例，每个测试前后清空"""
    category_tree_service.invalidate()
    yield
    category_tree_service.invalidate()


# ==================== 种子数据 ====================

@pytest.fixture
async def category_tree(db_session):
    """
    示例品类树：

        1 Electronics
        ├── 2 Phones
        │   └── 4 Cases
        └── 3 Laptops
        5 Home
    """
    db_session.add_all([
        Category(id=1, category_name="Electronics", parent=None, level=0, has_children=True, order_number=0),
        Category(id=2, category_name="Phones", parent=1, level=1, has_children=True, order_number=0),
        Category(id=3, category_name="Laptops", parent=1, level=1, has_children=False, order_number=1),
        Category(id=4, category_name="Cases", parent=2, level=2, has_children=False, order_number=0),
        Category(id=5, category_name="Home", parent=0, level=0, has_children=False, order_number=1),
    ])
    await db_session.commit()
    return db_session


@pytest.fixture
async def products(category_tree):
    """每个叶子品类一个商品，另有一个美元计价商品"""
    session = category_tree
    session.add_all([
        Product(id=1, product_code="CN-100001", product_name="Phone case", category_id=4, product_price=100),
        Product(id=2, product_code="CN-100002", product_name="Laptop stand", category_id=3, product_price=200),
        Product(id=3, product_code="CN-100003", product_name="Lamp", category_id=5, product_price=50, out_of_stock=1),
        Product(id=4, product_code="US-1", product_name="Imported charger", category_id=2, product_price=20, currency_id=6),
    ])
    await session.commit()
    return session


@pytest.fixture
async def order_factory(db_session, statuses):
    """
    创建订单和商品

    用法：
        order = await order_factory(["ordered", "processing"], status=9)
    """

    async def create(item_keys, status=9, **order_fields):
        if await db_session.get(Customer, 1) is None:
            db_session.add(Customer(id=1, first_name="Rami", last_name="Haddad", email="rami@example.com"))

        order = Order(
            r_user_id=1,
            status=status,
            subtotal=order_fields.pop("subtotal", 100),
            shipping_amount=order_fields.pop("shipping_amount", 20),
            tax_amount=order_fields.pop("tax_amount", 5),
            discount_amount=order_fields.pop("discount_amount", 10),
            total=order_fields.pop("total", 115),
            **order_fields,
        )
        db_session.add(order)
        await db_session.flush()

        for index, key in enumerate(item_keys):
            db_session.add(OrderItem(
                r_order_id=order.id,
                r_product_id=index + 1,
                product_name=f"Item {index + 1}",
                product_code=f"CN-{index + 1:06d}",
                quantity=1,
                product_price=50,
                status=status,
                workflow_status_id=statuses[key].id if key else None,
                shipping=10,
                shipping_method="air",
            ))
        await db_session.commit()
        return order

    return create


# ==================== 会话 / API 客户端 ====================

@pytest.fixture
def super_admin():
    return SessionUser(
        user_id=1,
        email="admin@example.com",
        name="Admin",
        role_key=SUPER_ADMIN_ROLE,
        role_name="Super Admin",
    )


@pytest.fixture
def operator():
    """普通运营：只能修改商品状态，不能取消 / 退款"""
    return SessionUser(
        user_id=2,
        email="operator@example.com",
        name="Operator",
        role_key="operator",
        role_name="Operator",
        permissions=[PERM_ITEM_STATUS_CHANGE],
    )


@pytest.fixture
async def client(session_maker, db_session, monkeypatch):
    """未登录的 API 客户端，数据库依赖指向测试库"""
    from app.main import app
    from app.services.order_service import order_service

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(order_service, "session_factory", session_maker)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client):
    """把某个会话用户的 Cookie 写入客户端"""

    def apply(user: SessionUser) -> httpx.AsyncClient:
        client.cookies.set(settings.SESSION_COOKIE_NAME, create_session_token(user))
        return client

    return apply


@pytest.fixture
def admin_client(login_as, super_admin):
    """以 super_admin 登录的 API 客户端"""
    return login_as(super_admin)
