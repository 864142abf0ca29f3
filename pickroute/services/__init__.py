"""
Business logic services.
Contains service layer implementations for core business operations.
"""

from .capacity_ledger import CapacityLedger, capacity_ledger
from .menu_catalog import MenuCatalog, menu_catalog
from .order_service import OrderService, order_service
from .restaurant_directory import RestaurantDirectory, restaurant_directory
from .route_matcher import RouteMatcher, route_matcher
from .slot_planner import SlotPlanner, slot_planner

__all__ = [
    "CapacityLedger",
    "MenuCatalog",
    "OrderService",
    "RestaurantDirectory",
    "RouteMatcher",
    "SlotPlanner",
    "capacity_ledger",
    "menu_catalog",
    "order_service",
    "restaurant_directory",
    "route_matcher",
    "slot_planner",
]
