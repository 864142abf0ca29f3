"""
路线匹配路由模块
根据起点、终点（可选途经点）返回顺路可取餐的餐厅
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ..deps import get_restaurant_directory, get_route_matcher
from ...core.error_handler import create_success_response
from ...core.security import get_current_actor
from ...models.order import Actor
from ...schemas.route import RouteMatchResponse
from ...services.restaurant_directory import RestaurantDirectory
from ...services.route_matcher import RouteMatcher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/match")
def match_route(
    payload: Dict[str, Any] = Body(..., description="路线请求：from / to / via / max_detour_km / filters 等"),
    actor: Actor = Depends(get_current_actor),
    matcher: RouteMatcher = Depends(get_route_matcher),
    directory: RestaurantDirectory = Depends(get_restaurant_directory),
):
    """
    路线匹配

    请求体字段名与路线服务一致（起点字段为 from），
    因此这里按字典接收，由 RouteMatcher 统一校验并给出结构化错误。
    """
    results = matcher.find_on_route(payload, directory.list_snapshots(active_only=True))
    logger.debug("route match for %s returned %d restaurants", actor.subject_id, len(results))
    response = RouteMatchResponse(restaurants=results, count=len(results))
    return create_success_response(response.model_dump(mode="json"), "匹配成功")
