# Routes package
from .series import router as series_router
from .news import router as news_router
from .indicators import router as indicators_router
from .realtime import router as realtime_router

__all__ = ['series_router', 'news_router', 'indicators_router', 'realtime_router']
