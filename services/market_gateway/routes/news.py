"""
News API Routes

Financial headlines from NewsAPI with a keyword impact score
"""

from typing import List

from fastapi import APIRouter, Depends, Request

from shared.errors import GatewayError
from shared.models.series import NewsArticle
from shared.utils.logger import get_logger

from adapters import NEWSAPI
from gateway import MarketGateway, caller_id, get_gateway
from rate_limiter import RateScope
from .errors import error_response

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["news"])

NEWS_CACHE_KEY = "news:financial"


@router.get("/news", response_model=List[NewsArticle])
async def get_news(request: Request, gateway: MarketGateway = Depends(get_gateway)):
    try:
        return await gateway.orchestrator.resolve(
            NEWS_CACHE_KEY,
            gateway.settings.cache_ttl_news,
            RateScope(NEWSAPI, caller_id(request)),
            gateway.budget(NEWSAPI),
            gateway.clients.newsapi.fetch_headlines,
            model=NewsArticle,
        )
    except GatewayError as e:
        logger.error("news_fetch_error", error=str(e))
        return error_response(e, "Failed to fetch news")
