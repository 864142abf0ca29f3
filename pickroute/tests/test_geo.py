"""
地理计算测试
"""

import pytest

from ..models.geo import Coordinate
from ..services.geo import bearing_degrees, distance_km, haversine_km


class TestHaversine:
    """大圆距离测试"""

    def test_same_point_is_zero(self):
        """测试同一点距离为 0"""
        point = Coordinate(lat=31.2304, lng=121.4737)
        assert distance_km(point, point) == 0

    def test_one_degree_of_latitude(self):
        """测试一度纬度约 111.19 公里"""
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.195, abs=0.01)

    def test_symmetric(self):
        """测试距离对称"""
        a = Coordinate(lat=39.9042, lng=116.4074)
        b = Coordinate(lat=31.2304, lng=121.4737)
        assert distance_km(a, b) == pytest.approx(distance_km(b, a))
        # 北京到上海约 1068 公里
        assert distance_km(a, b) == pytest.approx(1068, rel=0.01)

    def test_antipodal_points(self):
        """测试对跖点不会因浮点误差产生异常"""
        assert haversine_km(0, 0, 0, 180) == pytest.approx(20015.09, rel=1e-4)


class TestBearing:
    """方位角测试"""

    @pytest.mark.parametrize("target,expected", [
        ((1, 0), 0),
        ((0, 1), 90),
        ((-1, 0), 180),
        ((0, -1), 270),
    ])
    def test_cardinal_directions(self, target, expected):
        """测试四个正方向"""
        origin = Coordinate(lat=0, lng=0)
        bearing = bearing_degrees(origin, Coordinate(lat=target[0], lng=target[1]))
        assert bearing == pytest.approx(expected, abs=1e-6)
        assert 0 <= bearing < 360


class TestCoordinate:
    """坐标模型测试"""

    @pytest.mark.parametrize("lat,lng", [(91, 0), (-91, 0), (0, 181), (0, -181), (float("nan"), 0)])
    def test_out_of_range_rejected(self, lat, lng):
        """测试越界坐标被拒绝"""
        with pytest.raises(ValueError):
            Coordinate(lat=lat, lng=lng)
