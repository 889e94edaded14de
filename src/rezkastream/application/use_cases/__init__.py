from .catalog import CatalogUseCase
from .preload import EpisodePreloader
from .resolve_stream import RequestContext, StreamResolutionController

__all__ = [
    "CatalogUseCase",
    "EpisodePreloader",
    "RequestContext",
    "StreamResolutionController",
]
