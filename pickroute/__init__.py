"""
PickRoute 顺路取餐后端
"""

__version__ = "1.0.0"
