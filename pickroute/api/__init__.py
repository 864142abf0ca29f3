"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import orders, restaurants, routes

api_router = APIRouter()

# 包含所有v1路由
api_router.include_router(routes.router, prefix="/routes", tags=["路线"])
api_router.include_router(restaurants.router, prefix="/restaurants", tags=["餐厅"])
api_router.include_router(orders.router, prefix="/orders", tags=["订单"])
