"""Stream payload decoder: turns the site's obfuscated ``streams`` value
into quality → URL pairs.

The payload is base64 of ``[720p]https://…,[1080p]https://…`` with junk
injected on top:

1. ``//_//`` trash blocks (marker + a base64 run that decodes to ``@#!$^``)
2. two-character obfuscation units starting with one of ``#@!$^``
   (the ``#h`` prefix is one of them)

Values embedded in page scripts are often already plain token lists and
skip decoding entirely.

The trash constants were reverse-engineered against the live site and are
kept overridable via ``PayloadDecoder(...)`` in case the scheme drifts.
"""

from __future__ import annotations

import base64
import binascii
import re

import structlog

from rezkastream.domain.entities import (
    QUALITY_PRIORITY,
    UNKNOWN_QUALITY,
    QualityStream,
    StreamInfo,
)
from rezkastream.domain.exceptions import DecodeFailure

log = structlog.get_logger(__name__)

TRASH_MARKER = "//_//"
# Max length of a padded trash run following the marker
TRASH_LOOKAHEAD = 50
# Length dropped after the marker when no padded run follows
TRASH_RUN_LENGTH = 16
OBFUSCATION_CHARS = "#@!$^"

_ABSOLUTE_URL_RE = re.compile(r"^https?://")
_TOKEN_RE = re.compile(r"\[([^\]]+)\](https?://[^\s,]+)")
_NON_B64_RE = re.compile(r"[^A-Za-z0-9+/=]")
_B64_ALPHABET_RE = re.compile(r"[^A-Za-z0-9+/]")
_DOUBLE_SLASH_RE = re.compile(r"([^:])//")


def _b64decode_lenient(data: str) -> str:
    """Decode base64 ignoring ``=`` anywhere and a dangling 6-bit symbol.

    Raises:
        DecodeFailure: no alphabet symbols left, or binascii rejected it.
    """
    symbols = _B64_ALPHABET_RE.sub("", data)
    if len(symbols) % 4 == 1:
        symbols = symbols[:-1]
    if not symbols:
        raise DecodeFailure("no base64 symbols in payload")

    padding = -len(symbols) % 4
    try:
        raw = base64.b64decode(symbols + "=" * padding)
    except (binascii.Error, ValueError) as exc:
        raise DecodeFailure(str(exc)) from exc
    return raw.decode("utf-8", errors="replace")


def select_stream(streams: list[QualityStream]) -> QualityStream | None:
    """Pick the first stream by ``QUALITY_PRIORITY``, else the first one."""
    for quality in QUALITY_PRIORITY:
        for stream in streams:
            if stream.quality == quality:
                return stream
    return streams[0] if streams else None


def normalize_url(url: str) -> str:
    """Collapse doubled path slashes (scheme kept) and trim whitespace."""
    if not url:
        return url
    return _DOUBLE_SLASH_RE.sub(r"\1/", url).strip()


class PayloadDecoder:
    """Decodes obfuscated stream payloads. Never raises on bad input."""

    def __init__(
        self,
        *,
        trash_marker: str = TRASH_MARKER,
        trash_lookahead: int = TRASH_LOOKAHEAD,
        trash_run_length: int = TRASH_RUN_LENGTH,
        obfuscation_chars: str = OBFUSCATION_CHARS,
    ) -> None:
        if not trash_marker:
            raise ValueError("trash_marker must not be empty")
        self._marker = trash_marker
        self._run_length = trash_run_length
        self._padded_run_re = re.compile(
            rf"^[A-Za-z0-9+/]{{1,{trash_lookahead}}}?={{1,2}}"
        )
        chars = re.escape(obfuscation_chars)
        self._unit_re = re.compile(f"[{chars}].", re.DOTALL)
        self._leftover_re = re.compile(f"[{chars}]+")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def decode(self, raw: str) -> list[QualityStream]:
        """Decode *raw* into ``(quality, url)`` pairs in payload order."""
        if not raw:
            return []

        if _ABSOLUTE_URL_RE.match(raw):
            return [QualityStream(quality=UNKNOWN_QUALITY, url=raw)]

        if _TOKEN_RE.search(raw):
            cleaned = raw
        else:
            cleaned = self.deobfuscate(raw)

        streams: list[QualityStream] = []
        for part in cleaned.split(","):
            match = _TOKEN_RE.search(part)
            if match:
                streams.append(QualityStream(quality=match.group(1), url=match.group(2)))

        if not streams and cleaned:
            log.debug("payload_tokens_unmatched", length=len(cleaned))
            streams.append(QualityStream(quality=UNKNOWN_QUALITY, url=cleaned))

        return streams

    def parse_stream_info(self, raw: str) -> StreamInfo:
        """Decode *raw* and select the preferred stream."""
        streams = self.decode(raw)
        return StreamInfo(streams=tuple(streams), selected=select_stream(streams))

    def deobfuscate(self, raw: str) -> str:
        """Run the junk removal + base64 chain.

        Returns *raw* unchanged when base64 decoding cannot be completed.
        """
        text = self.remove_trash_blocks(raw)
        text = self._unit_re.sub("", text)
        text = _NON_B64_RE.sub("", text)
        text += "=" * (-len(text) % 4)

        try:
            decoded = _b64decode_lenient(text)
        except DecodeFailure as exc:
            log.debug("payload_decode_failed", error=str(exc), length=len(raw))
            return raw

        return self._leftover_re.sub("", decoded)

    def remove_trash_blocks(self, text: str) -> str:
        """Drop every marker together with the trash run that follows it."""
        marker_len = len(self._marker)
        idx = text.find(self._marker)
        while idx != -1:
            after = text[idx + marker_len :]
            padded = self._padded_run_re.match(after)
            if padded:
                drop = len(padded.group(0))
            else:
                drop = min(self._run_length, len(after))
            text = text[:idx] + after[drop:]
            idx = text.find(self._marker)
        return text


_default_decoder = PayloadDecoder()


def decode_payload(raw: str) -> list[QualityStream]:
    """Decode *raw* with the default obfuscation constants."""
    return _default_decoder.decode(raw)


def parse_stream_info(raw: str) -> StreamInfo:
    """Decode *raw* with default constants and select the preferred stream."""
    return _default_decoder.parse_stream_info(raw)
