"""
Pydantic models for data validation and serialization
"""

from .series import *

__all__ = [
    "SeriesPoint",
    "NewsArticle",
    "NewsImpact",
    "IndicatorRequest",
    "CryptoBroadcast",
    "order_series",
]
