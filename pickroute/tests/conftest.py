"""
测试配置文件
提供测试所需的fixtures和配置
"""

import os

# 全局实例在导入时读取配置，必须先于包内模块导入设置
os.environ.setdefault("PICKROUTE_DATABASE_URL", ":memory:")
os.environ.setdefault("PICKROUTE_JWT_SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from ..api.deps import get_db, get_order_service, get_restaurant_directory, get_route_matcher
from ..app import create_app
from ..core.database import DatabaseManager
from ..core.security import security_manager
from ..models.geo import Coordinate
from ..models.order import ActorRole
from ..models.restaurant import MenuItem, RestaurantSnapshot
from ..services.capacity_ledger import CapacityLedger
from ..services.menu_catalog import MenuCatalog
from ..services.order_service import OrderService
from ..services.restaurant_directory import RestaurantDirectory
from ..services.route_matcher import RouteMatcher

# 测试基准时间
BASE_TIME = datetime(2024, 5, 20, 12, 0, 0)

# 路线 (0,0) -> (0.1,0) 附近的餐厅，绕行距离约为：
# r-closed 0km，r-full 0.22km，r-noodle 3.1km，r-bbq 7.1km
SEED_RESTAURANTS = [
    RestaurantSnapshot(id="r-noodle", name="兰州拉面", location=Coordinate(lat=0.05, lng=0.04),
                       avg_prep_time_minutes=8, accepts_orders=True, max_concurrent_orders=5,
                       same_side_of_road=True),
    RestaurantSnapshot(id="r-bbq", name="烧烤", location=Coordinate(lat=0.05, lng=0.065),
                       avg_prep_time_minutes=15, accepts_orders=True, max_concurrent_orders=5,
                       parking_available=True),
    RestaurantSnapshot(id="r-full", name="小饭桌", location=Coordinate(lat=0.05, lng=0.01),
                       avg_prep_time_minutes=5, accepts_orders=True, max_concurrent_orders=1,
                       parking_available=True),
    RestaurantSnapshot(id="r-closed", name="暂停接单", location=Coordinate(lat=0.05, lng=0.0),
                       avg_prep_time_minutes=10, accepts_orders=False),
    RestaurantSnapshot(id="r-inactive", name="已歇业", location=Coordinate(lat=0.02, lng=0.0),
                       avg_prep_time_minutes=10, accepts_orders=True, is_active=False),
]

SEED_MENU = [
    MenuItem(id="m-noodle", restaurant_id="r-noodle", name="牛肉面", price_cents=1800, prep_time_minutes=8),
    MenuItem(id="m-egg", restaurant_id="r-noodle", name="卤蛋", price_cents=300, prep_time_minutes=2),
    MenuItem(id="m-soldout", restaurant_id="r-noodle", name="羊肉串", price_cents=500, is_available=False),
    MenuItem(id="m-rice", restaurant_id="r-full", name="盖饭", price_cents=2000, prep_time_minutes=5),
    MenuItem(id="m-closed", restaurant_id="r-closed", name="炒饭", price_cents=1500, prep_time_minutes=10),
    MenuItem(id="m-inactive", restaurant_id="r-inactive", name="饺子", price_cents=1200, prep_time_minutes=10),
]


class FrozenClock:
    """可手动推进的测试时钟"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """测试时钟"""
    return FrozenClock(BASE_TIME)


@pytest.fixture
def test_db():
    """测试数据库"""
    db = DatabaseManager(db_path=":memory:", lock_timeout=5.0)
    yield db
    db.close()


@pytest.fixture
def directory(test_db):
    return RestaurantDirectory(test_db)


@pytest.fixture
def catalog(test_db):
    return MenuCatalog(test_db)


@pytest.fixture
def ledger(test_db):
    return CapacityLedger(test_db)


@pytest.fixture
def seeded_db(test_db, directory, catalog):
    """写入示例餐厅和菜单"""
    for snapshot in SEED_RESTAURANTS:
        directory.upsert_snapshot(snapshot)
    catalog.upsert_items(SEED_MENU)
    return test_db


@pytest.fixture
def order_service(seeded_db, clock, directory, catalog, ledger):
    """绑定测试数据库和测试时钟的订单服务"""
    return OrderService(db=seeded_db, clock=clock, directory=directory, catalog=catalog, ledger=ledger)


@pytest.fixture
def route_matcher(clock):
    return RouteMatcher(detour_weight=5.0, time_weight=2.0, include_non_accepting=True,
                        ready_fast_threshold_minutes=10, clock=clock)


@pytest.fixture
def app_instance(seeded_db, order_service, directory, route_matcher):
    """测试应用，服务依赖替换为测试实例"""
    app = create_app()
    app.dependency_overrides[get_db] = lambda: seeded_db
    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_restaurant_directory] = lambda: directory
    app.dependency_overrides[get_route_matcher] = lambda: route_matcher
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    return TestClient(app_instance)


@pytest.fixture
def auth_headers():
    """按主体和角色生成认证头"""
    def _headers(subject_id: str, role: ActorRole = ActorRole.USER) -> dict:
        token = security_manager.create_jwt_token(subject_id, role)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def user_headers(auth_headers):
    return auth_headers("u-alice", ActorRole.USER)


@pytest.fixture
def restaurant_headers(auth_headers):
    return auth_headers("r-noodle", ActorRole.RESTAURANT)


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers("ops-admin", ActorRole.ADMIN)
