"""WebVTT-style caption parser used to render subtitles in sync with playback."""

from __future__ import annotations

import re

import structlog

from rezkastream.domain.entities import Cue

log = structlog.get_logger(__name__)

RANGE_SEPARATOR = "-->"

_BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")
_TAG_RE = re.compile(r"<[^>]+>")


def parse_timestamp(value: str) -> float:
    """Convert ``H:MM:SS.mmm`` or ``MM:SS.mmm`` to seconds.

    Raises:
        ValueError: Not two or three numeric colon-separated fields.
    """
    parts = value.strip().split(":")
    if len(parts) == 3:
        hours, minutes, seconds = parts
    elif len(parts) == 2:
        hours = "0"
        minutes, seconds = parts
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")
    return float(hours) * 3600 + float(minutes) * 60 + float(seconds)


def _parse_block(block: str) -> Cue | None:
    lines = block.strip().split("\n")
    range_idx = next(
        (i for i, line in enumerate(lines) if RANGE_SEPARATOR in line), None
    )
    # Header/comment/style blocks carry no range line
    if range_idx is None:
        return None

    start_raw, _, end_raw = lines[range_idx].partition(RANGE_SEPARATOR)
    end_tokens = end_raw.split()
    if not end_tokens:
        return None

    try:
        start = parse_timestamp(start_raw)
        end = parse_timestamp(end_tokens[0])
    except ValueError:
        log.debug("cue_timestamp_invalid", line=lines[range_idx][:80])
        return None

    text = _TAG_RE.sub("", "\n".join(lines[range_idx + 1 :])).strip()
    if not text:
        return None
    return Cue(start=start, end=end, text=text)


def parse_cue_document(text: str) -> list[Cue]:
    """Parse a caption document into cues, in document order."""
    cues: list[Cue] = []
    for block in _BLOCK_SPLIT_RE.split(text.replace("\r\n", "\n")):
        cue = _parse_block(block)
        if cue is not None:
            cues.append(cue)
    return cues


def active_cue_text(cues: list[Cue], t: float) -> str | None:
    """Return the text of the first cue whose inclusive range holds *t*."""
    for cue in cues:
        if cue.contains(t):
            return cue.text
    return None
