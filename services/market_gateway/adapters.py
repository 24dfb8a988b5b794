"""
Provider adapters - map each provider's JSON envelope into canonical models

Pure functions: no I/O, no logging. The HTTP clients call them on the
decoded response body and the fetch path only ever sees SeriesPoint /
NewsArticle lists.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.errors import UpstreamError, UpstreamQuotaExceeded
from shared.models.series import NewsArticle, NewsImpact, SeriesPoint, order_series


ALPHA_VANTAGE = "alpha"
COINGECKO = "coingecko"
NEWSAPI = "newsapi"

INTRADAY_SERIES_FIELD = "Time Series (1min)"
DAILY_SERIES_FIELD = "Time Series (Daily)"
CLOSE_FIELD = "4. close"
DEFAULT_MARKET_TZ = "US/Eastern"

HIGH_IMPACT_WORDS = ("fed", "rate", "inflation", "gdp", "war", "crisis")
MEDIUM_IMPACT_WORDS = ("oil", "trade", "policy", "earnings")


# ============================================================================
# Alpha Vantage
# ============================================================================

def _alpha_vantage_zone(meta: Dict[str, Any]) -> ZoneInfo:
    name = meta.get("6. Time Zone") or meta.get("5. Time Zone") or DEFAULT_MARKET_TZ
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_MARKET_TZ)


def parse_alpha_vantage_series(payload: Any, series_field: str) -> List[SeriesPoint]:
    """
    Normalize a TIME_SERIES_* response

    Alpha Vantage signals quota exhaustion inside a 200 response with a
    "Note" (or "Information") field instead of an HTTP status.
    """
    if not payload or not isinstance(payload, dict):
        raise UpstreamError(ALPHA_VANTAGE, "No data returned")

    if "Note" in payload or "Information" in payload:
        raise UpstreamQuotaExceeded(ALPHA_VANTAGE, payload.get("Note") or payload.get("Information"))

    series = payload.get(series_field)
    if not isinstance(series, dict):
        detail = payload.get("Error Message") or "No data returned"
        raise UpstreamError(ALPHA_VANTAGE, detail)

    # Intraday stamps are market-local wall time; daily dates are UTC midnight
    market_zone = _alpha_vantage_zone(payload.get("Meta Data") or {})
    points: List[SeriesPoint] = []
    for stamp, values in series.items():
        zone = timezone.utc if len(stamp) == len("YYYY-MM-DD") else market_zone
        try:
            moment = datetime.fromisoformat(stamp).replace(tzinfo=zone)
            close = float(values[CLOSE_FIELD])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(ALPHA_VANTAGE, f"malformed entry {stamp!r}: {e}") from e
        points.append(SeriesPoint(time=int(moment.timestamp()), value=close))

    return order_series(points)


# ============================================================================
# CoinGecko
# ============================================================================

def parse_coingecko_ohlc(payload: Any) -> List[SeriesPoint]:
    """Normalize /coins/{id}/ohlc rows [ms, open, high, low, close]"""
    if not isinstance(payload, list):
        raise UpstreamError(COINGECKO, "unexpected OHLC payload")

    points: List[SeriesPoint] = []
    for row in payload:
        try:
            timestamp_ms, close = row[0], row[4]
            points.append(SeriesPoint(time=int(timestamp_ms // 1000), value=float(close)))
        except (IndexError, TypeError, ValueError) as e:
            raise UpstreamError(COINGECKO, f"malformed OHLC row: {e}") from e

    return order_series(points)


# ============================================================================
# NewsAPI
# ============================================================================

def classify_news_impact(title: str) -> NewsImpact:
    """Keyword heuristic: substring match, high before medium"""
    lower = title.lower()
    if any(word in lower for word in HIGH_IMPACT_WORDS):
        return "high"
    if any(word in lower for word in MEDIUM_IMPACT_WORDS):
        return "medium"
    return "low"


def format_clock_time(published_at: str) -> str:
    """'2024-03-01T14:05:09Z' -> '2:05:09 PM' (UTC)"""
    moment = datetime.fromisoformat(published_at.replace("Z", "+00:00"))
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment:%M:%S} {'AM' if moment.hour < 12 else 'PM'}"


def parse_newsapi_articles(payload: Any) -> List[NewsArticle]:
    if not isinstance(payload, dict) or not isinstance(payload.get("articles"), list):
        raise UpstreamError(NEWSAPI, "No articles returned")

    articles: List[NewsArticle] = []
    for article in payload["articles"]:
        try:
            title: str = article["title"] or ""
            source: Optional[str] = (article.get("source") or {}).get("name")
            articles.append(NewsArticle(
                title=title,
                time=format_clock_time(article["publishedAt"]),
                source=source,
                impact=classify_news_impact(title),
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamError(NEWSAPI, f"malformed article: {e}") from e

    return articles
