from .media import (
    CatalogItem,
    Category,
    Episode,
    LastWatch,
    MediaPage,
    MediaReference,
    NextEpisode,
    Season,
    Translation,
)
from .stream import (
    QUALITY_PRIORITY,
    TOP_QUALITIES,
    UNKNOWN_QUALITY,
    Cue,
    QualityStream,
    ResolutionResult,
    StreamInfo,
    SubtitleTrack,
    quality_rank,
)

__all__ = [
    "QUALITY_PRIORITY",
    "TOP_QUALITIES",
    "UNKNOWN_QUALITY",
    "CatalogItem",
    "Category",
    "Cue",
    "Episode",
    "LastWatch",
    "MediaPage",
    "MediaReference",
    "NextEpisode",
    "QualityStream",
    "ResolutionResult",
    "Season",
    "StreamInfo",
    "SubtitleTrack",
    "Translation",
    "quality_rank",
]
