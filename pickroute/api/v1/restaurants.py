"""
餐厅查询路由模块
"""

from fastapi import APIRouter, Depends, Query

from ..deps import get_restaurant_directory, get_route_matcher
from ...core.error_handler import create_success_response
from ...core.security import get_current_actor
from ...models.order import Actor
from ...schemas.route import NearbyResponse
from ...services.restaurant_directory import RestaurantDirectory
from ...services.route_matcher import RouteMatcher

router = APIRouter()


@router.get("/nearby")
def nearby_restaurants(
    lat: float = Query(..., description="纬度"),
    lng: float = Query(..., description="经度"),
    radius_km: float = Query(3.0, description="搜索半径（公里）"),
    actor: Actor = Depends(get_current_actor),
    matcher: RouteMatcher = Depends(get_route_matcher),
    directory: RestaurantDirectory = Depends(get_restaurant_directory),
):
    """查询附近的营业餐厅，按距离升序"""
    results = matcher.find_nearby({"lat": lat, "lng": lng}, radius_km,
                                  directory.list_snapshots(active_only=True))
    response = NearbyResponse(restaurants=results, count=len(results))
    return create_success_response(response.model_dump(mode="json"), "查询成功")
