"""
地理坐标模型
"""

from pydantic import Field

from .base import ValueObject


class Coordinate(ValueObject):
    """WGS84 坐标（十进制度）"""
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False, description="纬度")
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False, description="经度")
