from .cache import CachePort
from .history_repository import HistoryRepository
from .http_fetcher import FetchResponse, HttpFetcherPort

__all__ = [
    "CachePort",
    "FetchResponse",
    "HistoryRepository",
    "HttpFetcherPort",
]
