"""
Series API Routes

Time-series endpoints backed by the fetch orchestrator:
- indices: Alpha Vantage intraday (1min)
- stock: Alpha Vantage daily
- crypto: CoinGecko OHLC closes
"""

from typing import List

from fastapi import APIRouter, Depends, Request

from shared.errors import GatewayError
from shared.models.series import SeriesPoint
from shared.utils.logger import get_logger

from adapters import ALPHA_VANTAGE, COINGECKO
from gateway import MarketGateway, caller_id, get_gateway
from rate_limiter import RateScope
from .errors import error_response

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["series"])


@router.get("/indices/{symbol}", response_model=List[SeriesPoint])
async def get_indices(symbol: str, request: Request, gateway: MarketGateway = Depends(get_gateway)):
    """
    Intraday index series, most recent points oldest-to-newest.

    Cached for 15 minutes; shares the Alpha Vantage budget with /stock.
    """
    cfg = gateway.settings
    try:
        return await gateway.orchestrator.resolve(
            f"indices:{symbol}",
            cfg.cache_ttl_indices,
            RateScope(ALPHA_VANTAGE, caller_id(request)),
            gateway.budget(ALPHA_VANTAGE),
            lambda: gateway.clients.alpha_vantage.fetch_intraday(symbol),
            window=cfg.series_window,
        )
    except GatewayError as e:
        logger.error("indices_fetch_error", symbol=symbol, error=str(e))
        return error_response(e, "Failed to fetch indices data")


@router.get("/stock/{symbol}", response_model=List[SeriesPoint])
async def get_stock(symbol: str, request: Request, gateway: MarketGateway = Depends(get_gateway)):
    """Daily closes for a stock"""
    cfg = gateway.settings
    try:
        return await gateway.orchestrator.resolve(
            f"stock:{symbol}",
            cfg.cache_ttl_stocks,
            RateScope(ALPHA_VANTAGE, caller_id(request)),
            gateway.budget(ALPHA_VANTAGE),
            lambda: gateway.clients.alpha_vantage.fetch_daily(symbol),
            window=cfg.series_window,
        )
    except GatewayError as e:
        logger.error("stock_fetch_error", symbol=symbol, error=str(e))
        return error_response(e, "Failed to fetch stock data")


@router.get("/crypto/{coin_id}", response_model=List[SeriesPoint])
async def get_crypto(coin_id: str, request: Request, gateway: MarketGateway = Depends(get_gateway)):
    """Crypto closes from 7 days of OHLC candles"""
    cfg = gateway.settings
    try:
        return await gateway.orchestrator.resolve(
            f"crypto:{coin_id}",
            cfg.cache_ttl_crypto,
            RateScope(COINGECKO, caller_id(request)),
            gateway.budget(COINGECKO),
            lambda: gateway.clients.coingecko.fetch_ohlc(coin_id),
            window=cfg.series_window,
        )
    except GatewayError as e:
        logger.error("crypto_fetch_error", coin_id=coin_id, error=str(e))
        return error_response(e, "Failed to fetch crypto data")
