"""
地理计算工具
基于 WGS84 坐标的大圆距离和方位角计算，纯函数、无副作用

输入坐标由上游校验；越界坐标返回无意义的数值，但不会抛出异常。
"""

import math

from ..models.geo import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine 公式计算两点间的大圆距离（公里）"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # 越界输入可能让 a 略超出 [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """两个坐标之间的距离（公里），对称且仅在 a == b 时为 0"""
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def bearing_degrees(a: Coordinate, b: Coordinate) -> float:
    """从 a 指向 b 的初始方位角，范围 [0, 360)"""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_lambda = math.radians(b.lng - a.lng)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360
