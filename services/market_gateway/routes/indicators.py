"""
Indicators API Routes

Stateless math over a posted series; no cache, no upstream calls
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from shared.models.series import IndicatorRequest
from shared.utils.logger import get_logger

from indicators import calculate_indicators

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["indicators"])


@router.post("/indicators")
async def post_indicators(body: IndicatorRequest):
    """
    Last value of each requested indicator.

    Body: {"data": [{"time": ..., "value": ...}], "indicators": ["rsi", "macd", "bollinger"]}
    """
    try:
        return calculate_indicators([point.value for point in body.data], body.indicators)
    except (ValueError, ArithmeticError) as e:
        logger.error("indicators_error", error=str(e))
        return JSONResponse(status_code=500, content={"error": "Failed to calculate indicators"})
