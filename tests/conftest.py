"""
Pytest 配置和 fixtures
"""
import itertools
import os
import tempfile

# 必须在导入 sf_core 之前设置，get_settings() 会缓存首次读取的配置
_TEST_DB_DIR = tempfile.mkdtemp(prefix="shopflow-test-")
os.environ["SF__DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'shopflow_test.db')}"
os.environ["SF__SECRET_KEY"] = "test-secret-key"
os.environ["SF__LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sf_core.database import get_db_manager, reset_db_manager
from sf_core.models import User, UserRole
from sf_core.services import CartService, CheckoutCoordinator, ProductCatalogService, get_auth_service


@pytest_asyncio.fixture
async def db_manager():
    """数据库管理器 fixture：每个用例使用全新的表"""
    reset_db_manager()
    manager = get_db_manager()
    await manager.create_tables()

    yield manager

    await manager.drop_tables()
    await manager.close()
    reset_db_manager()


async def _create_user(manager, username: str, role: str = UserRole.USER.value) -> User:
    async with manager.get_transaction() as session:
        user = User(
            username=username,
            email=f"{username}@example.com",
            first_name=username.capitalize(),
            last_name="Tester",
            role=role
        )
        session.add(user)
    return user


@pytest_asyncio.fixture
async def customer(db_manager) -> User:
    return await _create_user(db_manager, "alice")


@pytest_asyncio.fixture
async def other_customer(db_manager) -> User:
    return await _create_user(db_manager, "bob")


@pytest_asyncio.fixture
async def admin(db_manager) -> User:
    return await _create_user(db_manager, "root", role=UserRole.ADMIN.value)


@pytest_asyncio.fixture
async def make_product(db_manager):
    """商品工厂：通过目录服务创建，初始库存会写入补货流水"""
    catalog = ProductCatalogService()
    counter = itertools.count(1)

    async def _make(stock_qty: int = 10, price: str = "19.99", **overrides):
        number = next(counter)
        data = {
            "sku": f"sku-{number:03d}",
            "name": f"Test Product {number}",
            "description": "Fixture product",
            "price": price,
            "stock_qty": stock_qty,
        }
        data.update(overrides)
        return await catalog.create_product(data)

    return _make


@pytest.fixture
def address():
    """示例收货地址"""
    return {
        "street": "1 Market Street",
        "city": "San Francisco",
        "state": "CA",
        "zipCode": "94105",
        "country": "US",
    }


@pytest.fixture
def auth_headers():
    """为指定用户签发 Bearer 令牌"""
    def _headers(user: User):
        token = get_auth_service().create_access_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest_asyncio.fixture
async def client(db_manager):
    """HTTP 客户端（不触发应用 lifespan，表由 db_manager 创建）"""
    from sf_core.app import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def place_order(db_manager, address):
    """下单工厂：把指定商品加入购物车后结算"""
    async def _place(user: User, *lines):
        carts = CartService()
        for product, quantity in lines:
            await carts.add_item(user.id, product["id"], quantity)
        return await CheckoutCoordinator().create_order(user.id, address)

    return _place
