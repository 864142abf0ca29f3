"""
路线匹配相关的响应模式
"""

from typing import List

from pydantic import BaseModel, Field

from ..models.route import MatchResult, NearbyResult


class RouteMatchResponse(BaseModel):
    """路线匹配响应"""
    restaurants: List[MatchResult] = Field(default_factory=list, description="按绕行距离升序的餐厅")
    count: int = Field(0, description="结果数量")


class NearbyResponse(BaseModel):
    """附近餐厅响应"""
    restaurants: List[NearbyResult] = Field(default_factory=list, description="按距离升序的餐厅")
    count: int = Field(0, description="结果数量")
