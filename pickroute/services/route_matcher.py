"""
路线匹配服务
根据用户的出行路线（起点/终点/途经点）筛选绕行可接受的餐厅，计算取餐匹配度并排序

主要功能：
- 绕行距离计算和最大绕行过滤
- 出餐快/同侧/停车等过滤条件（AND 组合）
- 取餐匹配度估算（仅用于排序展示，不是概率）
- 附近餐厅查询

业务规则：
- 未营业餐厅直接剔除；暂停接单的餐厅默认保留并标记为不可下单
- 结果按绕行距离升序，距离相同按餐厅ID升序，不做截断
- 请求坐标缺失或格式错误时直接报错，不返回空列表
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .geo import bearing_degrees, distance_km
from ..config.settings import settings
from ..core.exceptions import InvalidRequestError
from ..models.geo import Coordinate
from ..models.restaurant import RestaurantSnapshot
from ..models.route import MatchResult, NearbyResult, RouteFilter, RouteRequest

logger = logging.getLogger(__name__)


def _validation_details(exc: ValidationError) -> List[dict]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


def coerce_route_request(payload: Union[RouteRequest, Mapping[str, Any]]) -> RouteRequest:
    """将请求体转换为 RouteRequest，缺失或非法坐标统一抛出 InvalidRequestError"""
    if isinstance(payload, RouteRequest):
        return payload
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("路线请求格式错误", details={"action": "match_route"})
    try:
        return RouteRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError(
            "路线请求参数错误",
            details={"action": "match_route", "errors": _validation_details(e)},
        ) from e


def coerce_coordinate(payload: Union[Coordinate, Mapping[str, Any]]) -> Coordinate:
    if isinstance(payload, Coordinate):
        return payload
    try:
        return Coordinate.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError(
            "坐标参数错误",
            details={"action": "find_nearby", "errors": _validation_details(e)},
        ) from e


class RouteMatcher:
    """路线匹配器，计算过程无共享可变状态，可并发调用"""

    def __init__(self,
                 detour_weight: Optional[float] = None,
                 time_weight: Optional[float] = None,
                 include_non_accepting: Optional[bool] = None,
                 ready_fast_threshold_minutes: Optional[int] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.detour_weight = settings.confidence_detour_weight if detour_weight is None else detour_weight
        self.time_weight = settings.confidence_time_weight if time_weight is None else time_weight
        self.include_non_accepting = (settings.match_include_non_accepting
                                      if include_non_accepting is None else include_non_accepting)
        self.ready_fast_threshold_minutes = (settings.ready_fast_threshold_minutes
                                             if ready_fast_threshold_minutes is None
                                             else ready_fast_threshold_minutes)
        self.clock = clock

    def find_on_route(self, request: Union[RouteRequest, Mapping[str, Any]],
                      candidates: Iterable[RestaurantSnapshot]) -> List[MatchResult]:
        """
        计算路线上的候选餐厅

        Args:
            request: 路线请求（RouteRequest 或等价的字典）
            candidates: 餐厅目录提供的快照

        Returns:
            list: 按绕行距离升序排列的 MatchResult

        Raises:
            InvalidRequestError: 起点/终点缺失或格式错误，或候选集缺失
        """
        route = coerce_route_request(request)
        if candidates is None:
            raise InvalidRequestError("缺少候选餐厅数据", details={"action": "match_route"})

        now = self.clock()
        origin = route.from_
        end = route.effective_end
        direct_km = distance_km(origin, end)

        results: List[MatchResult] = []
        for restaurant in candidates:
            if not restaurant.is_active:
                continue
            if not restaurant.accepts_orders and not self.include_non_accepting:
                continue

            to_restaurant_km = distance_km(origin, restaurant.location)
            detour = to_restaurant_km + distance_km(restaurant.location, end) - direct_km
            # 三角不等式保证非负，浮点误差可能产生极小负数
            detour = max(0.0, detour)
            if detour > route.max_detour_km:
                continue

            if not self._passes_filters(restaurant, route.filters):
                continue

            results.append(MatchResult(
                restaurant_id=restaurant.id,
                name=restaurant.name,
                detour_km=detour,
                distance_km=to_restaurant_km,
                ready_by_time=now + timedelta(minutes=restaurant.avg_prep_time_minutes),
                pickup_confidence=self.pickup_confidence(
                    detour, restaurant.avg_prep_time_minutes, route.arrival_eta_minutes),
                orderable=restaurant.accepts_orders,
            ))

        results.sort(key=lambda r: (r.detour_km, r.restaurant_id))
        logger.debug("route match: %d restaurants within %.1f km detour", len(results), route.max_detour_km)
        return results

    def find_nearby(self, center: Union[Coordinate, Mapping[str, Any]], radius_km: float,
                    candidates: Iterable[RestaurantSnapshot]) -> List[NearbyResult]:
        """查询中心点半径内的营业餐厅，按距离升序"""
        point = coerce_coordinate(center)
        if radius_km is None or not math.isfinite(radius_km) or radius_km < 0:
            raise InvalidRequestError("搜索半径必须为非负数",
                                      details={"action": "find_nearby", "radius_km": radius_km})
        if candidates is None:
            raise InvalidRequestError("缺少候选餐厅数据", details={"action": "find_nearby"})

        now = self.clock()
        results = []
        for restaurant in candidates:
            if not restaurant.is_active:
                continue
            if not restaurant.accepts_orders and not self.include_non_accepting:
                continue
            dist = distance_km(point, restaurant.location)
            if dist > radius_km:
                continue
            results.append(NearbyResult(
                restaurant_id=restaurant.id,
                name=restaurant.name,
                distance_km=dist,
                bearing_degrees=bearing_degrees(point, restaurant.location),
                ready_by_time=now + timedelta(minutes=restaurant.avg_prep_time_minutes),
                orderable=restaurant.accepts_orders,
            ))
        results.sort(key=lambda r: (r.distance_km, r.restaurant_id))
        return results

    def pickup_confidence(self, detour_km: float, prep_time_minutes: float,
                          arrival_eta_minutes: Optional[float] = None) -> int:
        """取餐匹配度：100 减去绕行和时间差的扣分，截断到 [0, 100] 后四舍五入"""
        confidence = 100.0 - self.detour_weight * detour_km
        if arrival_eta_minutes is not None:
            confidence -= self.time_weight * abs(arrival_eta_minutes - prep_time_minutes)
        return math.floor(min(100.0, max(0.0, confidence)) + 0.5)

    def _passes_filters(self, restaurant: RestaurantSnapshot, filters: Iterable[RouteFilter]) -> bool:
        for route_filter in filters:
            if route_filter == RouteFilter.READY_UNDER_10:
                if restaurant.avg_prep_time_minutes > self.ready_fast_threshold_minutes:
                    return False
            elif route_filter == RouteFilter.SAME_SIDE:
                if not restaurant.same_side_of_road:
                    return False
            elif route_filter == RouteFilter.PARKING:
                if not restaurant.parking_available:
                    return False
        return True


# 全局服务实例
route_matcher = RouteMatcher()
