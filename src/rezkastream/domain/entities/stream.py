"""Domain entities for decoded streams, subtitles and resolution results.

Pure value objects without I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Ranked best-first. Labels not listed rank after all of these and tie
# with each other (first seen wins).
QUALITY_PRIORITY: tuple[str, ...] = ("1080p Ultra", "1080p", "720p", "480p", "360p")

# Qualities good enough to stop probing the backend.
TOP_QUALITIES: frozenset[str] = frozenset(QUALITY_PRIORITY[:2])

UNKNOWN_QUALITY = "unknown"


def quality_rank(quality: str | None) -> int:
    """Return the priority index of *quality* (lower = better)."""
    if quality in QUALITY_PRIORITY:
        return QUALITY_PRIORITY.index(quality)
    return len(QUALITY_PRIORITY)


@dataclass(frozen=True)
class QualityStream:
    """One quality label paired with its video URL."""

    quality: str  # free-form: "720p", "1080p Ultra", "unknown", ...
    url: str


@dataclass(frozen=True)
class StreamInfo:
    """All streams decoded from one payload plus the preferred pick."""

    streams: tuple[QualityStream, ...] = ()
    selected: QualityStream | None = None


@dataclass(frozen=True)
class SubtitleTrack:
    title: str
    url: str
    language: str | None = None  # ISO 639-1, when the backend maps it


@dataclass(frozen=True)
class Cue:
    """Caption unit; ``t`` is inside iff ``start <= t <= end``."""

    start: float  # seconds
    end: float  # seconds
    text: str

    def contains(self, t: float) -> bool:
        return self.start <= t <= self.end


@dataclass(frozen=True)
class ResolutionResult:
    """Terminal output of one stream resolution call."""

    url: str
    quality: str
    attempts: int  # attempt number that produced this result
    subtitles: tuple[SubtitleTrack, ...] = field(default_factory=tuple)
