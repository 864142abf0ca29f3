"""
API 依赖提供函数
路由通过这些函数获取服务实例，测试中用 app.dependency_overrides 替换
"""

from ..core.database import DatabaseManager, db_manager
from ..services.order_service import OrderService, order_service
from ..services.restaurant_directory import RestaurantDirectory, restaurant_directory
from ..services.route_matcher import RouteMatcher, route_matcher


def get_db() -> DatabaseManager:
    return db_manager


def get_order_service() -> OrderService:
    return order_service


def get_restaurant_directory() -> RestaurantDirectory:
    return restaurant_directory


def get_route_matcher() -> RouteMatcher:
    return route_matcher
