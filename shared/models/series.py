"""
Pydantic models for normalized series, news and indicator payloads
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field


# =============================================
# SERIES
# =============================================

class SeriesPoint(BaseModel):
    """One observation of a time series in canonical form"""

    time: int = Field(..., description="Unix timestamp in seconds")
    value: float = Field(..., description="Observed value (close price)")


def order_series(points: List[SeriesPoint]) -> List[SeriesPoint]:
    """
    Order points oldest-to-newest

    sorted() is stable, so points sharing a timestamp keep their
    upstream relative order.
    """
    return sorted(points, key=lambda point: point.time)


# =============================================
# NEWS
# =============================================

NewsImpact = Literal["high", "medium", "low"]


class NewsArticle(BaseModel):
    """Headline with a keyword-derived market impact"""

    title: str = Field(..., description="Headline")
    time: str = Field(..., description="Clock time of publication")
    source: Optional[str] = Field(None, description="Publisher name")
    impact: NewsImpact = Field(..., description="Estimated market impact")


# =============================================
# INDICATORS
# =============================================

class IndicatorRequest(BaseModel):
    """Body of POST /api/indicators"""

    data: List[SeriesPoint] = Field(..., description="Series to compute indicators on")
    indicators: List[str] = Field(default_factory=list, description="Indicator names (rsi, macd, bollinger)")


# =============================================
# REAL-TIME
# =============================================

class CryptoBroadcast(BaseModel):
    """Message pushed to WebSocket subscribers"""

    type: Literal["crypto"] = "crypto"
    data: List[SeriesPoint]
