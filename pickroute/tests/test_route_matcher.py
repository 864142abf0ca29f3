"""
路线匹配测试
"""

from datetime import timedelta

import pytest

from .conftest import BASE_TIME, SEED_RESTAURANTS
from ..core.exceptions import InvalidRequestError
from ..models.geo import Coordinate
from ..models.restaurant import RestaurantSnapshot
from ..models.route import RouteRequest
from ..services.route_matcher import RouteMatcher

ROUTE = {"from": {"lat": 0, "lng": 0}, "to": {"lat": 0.1, "lng": 0}}


def _restaurant(restaurant_id, lat, lng, prep=10, **kwargs):
    kwargs.setdefault("accepts_orders", True)
    return RestaurantSnapshot(id=restaurant_id, name=restaurant_id, location=Coordinate(lat=lat, lng=lng),
                              avg_prep_time_minutes=prep, **kwargs)


class TestFindOnRoute:
    """路线匹配测试"""

    def test_filtering_by_detour_and_ready_time(self, route_matcher):
        """测试绕行 3km 出餐 8 分钟的餐厅保留，绕行 7km 出餐 15 分钟的餐厅剔除"""
        a = _restaurant("a", 0.05, 0.04, prep=8)
        b = _restaurant("b", 0.05, 0.065, prep=15)
        request = dict(ROUTE, max_detour_km=5, filters=["ready_under_10"])

        results = route_matcher.find_on_route(request, [a, b])

        assert [r.restaurant_id for r in results] == ["a"]
        assert results[0].detour_km == pytest.approx(3.12, abs=0.05)

    def test_ready_filter_excludes_slow_kitchen_within_detour(self, route_matcher):
        """测试绕行满足但出餐慢的餐厅被 ready_under_10 过滤"""
        slow = _restaurant("slow", 0.05, 0.01, prep=15)
        fast = _restaurant("fast", 0.05, 0.02, prep=10)
        request = dict(ROUTE, filters=["ready_under_10"])

        assert [r.restaurant_id for r in route_matcher.find_on_route(request, [slow, fast])] == ["fast"]

    def test_filters_combine_with_and(self, route_matcher):
        """测试多个过滤条件同时满足才保留"""
        both = _restaurant("both", 0.05, 0.01, same_side_of_road=True, parking_available=True)
        side_only = _restaurant("side", 0.05, 0.01, same_side_of_road=True)
        request = dict(ROUTE, filters=["same_side", "parking"])

        assert [r.restaurant_id for r in route_matcher.find_on_route(request, [side_only, both])] == ["both"]

    def test_sorted_by_detour_then_id(self, route_matcher):
        """测试按绕行升序，绕行相同按餐厅ID升序"""
        far = _restaurant("far", 0.05, 0.03)
        twin_b = _restaurant("twin-b", 0.05, 0.01)
        twin_a = _restaurant("twin-a", 0.05, 0.01)

        results = route_matcher.find_on_route(ROUTE, [far, twin_b, twin_a])

        assert [r.restaurant_id for r in results] == ["twin-a", "twin-b", "far"]
        detours = [r.detour_km for r in results]
        assert detours == sorted(detours)

    def test_detour_never_negative(self, route_matcher):
        """测试路线上的餐厅绕行为 0 而不是负数"""
        on_line = _restaurant("on-line", 0.05, 0.0)
        results = route_matcher.find_on_route(ROUTE, [on_line])
        assert results[0].detour_km >= 0
        assert results[0].detour_km == pytest.approx(0, abs=1e-6)

    def test_via_replaces_destination(self, route_matcher):
        """测试途经点作为有效终点"""
        near_via = _restaurant("near-via", 0.0, 0.05)
        request = dict(ROUTE, via={"lat": 0, "lng": 0.1}, max_detour_km=0.5)

        results = route_matcher.find_on_route(request, [near_via])
        assert [r.restaurant_id for r in results] == ["near-via"]
        assert results[0].distance_km == pytest.approx(5.56, abs=0.01)

    def test_inactive_excluded_and_not_accepting_marked(self, route_matcher):
        """测试歇业餐厅剔除，暂停接单餐厅保留但不可下单"""
        results = route_matcher.find_on_route(ROUTE, SEED_RESTAURANTS)
        by_id = {r.restaurant_id: r for r in results}

        assert "r-inactive" not in by_id
        assert "r-bbq" not in by_id
        assert by_id["r-closed"].orderable is False
        assert by_id["r-noodle"].orderable is True

    def test_not_accepting_hidden_when_configured(self, clock):
        """测试配置为不展示时剔除暂停接单餐厅"""
        matcher = RouteMatcher(include_non_accepting=False, clock=clock)
        results = matcher.find_on_route(ROUTE, SEED_RESTAURANTS)
        assert "r-closed" not in {r.restaurant_id for r in results}

    def test_ready_by_time_from_prep_time(self, route_matcher):
        """测试出餐时间为当前时间加平均出餐时间"""
        results = route_matcher.find_on_route(ROUTE, [_restaurant("a", 0.05, 0.01, prep=12)])
        assert results[0].ready_by_time == BASE_TIME + timedelta(minutes=12)

    def test_empty_directory_returns_empty_list(self, route_matcher):
        """测试目录为空时返回空列表"""
        assert route_matcher.find_on_route(ROUTE, []) == []

    def test_missing_origin_rejected(self, route_matcher):
        """测试缺少起点时报错而不是返回空列表"""
        with pytest.raises(InvalidRequestError) as exc_info:
            route_matcher.find_on_route({"to": {"lat": 0.1, "lng": 0}}, SEED_RESTAURANTS)
        assert exc_info.value.details["action"] == "match_route"
        assert any(err["field"] == "from" for err in exc_info.value.details["errors"])

    def test_out_of_range_coordinate_rejected(self, route_matcher):
        """测试越界坐标报错"""
        request = {"from": {"lat": 95, "lng": 0}, "to": {"lat": 0.1, "lng": 0}}
        with pytest.raises(InvalidRequestError):
            route_matcher.find_on_route(request, SEED_RESTAURANTS)

    def test_missing_candidates_rejected(self, route_matcher):
        """测试候选集缺失时报错"""
        with pytest.raises(InvalidRequestError):
            route_matcher.find_on_route(ROUTE, None)

    def test_accepts_model_instance(self, route_matcher):
        """测试直接传入 RouteRequest"""
        request = RouteRequest.model_validate(ROUTE)
        assert len(route_matcher.find_on_route(request, [_restaurant("a", 0.05, 0.01)])) == 1


class TestPickupConfidence:
    """取餐匹配度测试"""

    def test_detour_only(self, route_matcher):
        """测试绕行 2km 且无到达时间时匹配度为 90"""
        assert route_matcher.pickup_confidence(2.0, 8) == 90

    def test_time_gap_penalty(self, route_matcher):
        """测试到达时间与出餐时间的差值扣分"""
        # 100 - 5*2 - 2*|12-8| = 82
        assert route_matcher.pickup_confidence(2.0, 8, arrival_eta_minutes=12) == 82

    def test_half_rounds_up(self, route_matcher):
        """测试 .5 向上取整"""
        # 100 - 5*1.5 = 92.5
        assert route_matcher.pickup_confidence(1.5, 8) == 93
        # 100 - 5*2.5 = 87.5
        assert route_matcher.pickup_confidence(2.5, 8) == 88

    def test_clamped_to_range(self, route_matcher):
        """测试匹配度截断在 [0, 100]"""
        assert route_matcher.pickup_confidence(50.0, 8) == 0
        assert route_matcher.pickup_confidence(0.0, 8, arrival_eta_minutes=8) == 100

    def test_arrival_eta_used_in_results(self, route_matcher):
        """测试请求中的到达时间参与匹配度计算"""
        restaurant = _restaurant("on-line", 0.05, 0.0, prep=8)
        results = route_matcher.find_on_route(dict(ROUTE, arrival_eta_minutes=13), [restaurant])
        assert results[0].pickup_confidence == 90


class TestFindNearby:
    """附近餐厅测试"""

    def test_sorted_by_distance(self, route_matcher):
        """测试半径内按距离升序"""
        results = route_matcher.find_nearby({"lat": 0.05, "lng": 0.0}, 2.0, SEED_RESTAURANTS)
        assert [r.restaurant_id for r in results] == ["r-closed", "r-full"]
        assert results[1].bearing_degrees == pytest.approx(90, abs=0.1)

    def test_negative_radius_rejected(self, route_matcher):
        """测试负半径报错"""
        with pytest.raises(InvalidRequestError):
            route_matcher.find_nearby({"lat": 0, "lng": 0}, -1, SEED_RESTAURANTS)

    def test_non_finite_radius_rejected(self, route_matcher):
        """测试 NaN 和无穷大半径报错，而不是返回全部餐厅"""
        for radius in (float("nan"), float("inf")):
            with pytest.raises(InvalidRequestError):
                route_matcher.find_nearby({"lat": 0.05, "lng": 0}, radius, SEED_RESTAURANTS)
