"""Stream resolution exceptions."""

from __future__ import annotations


class RezkaStreamError(Exception):
    """Base class for all rezkastream errors."""


class DecodeFailure(RezkaStreamError):
    """Raised internally when an obfuscated payload cannot be decoded.

    Never leaves the decoder; it degrades to best-effort output instead.
    """


class ScrapeEmpty(RezkaStreamError):
    """Raised internally when an expected HTML section is absent."""


class BackendRejectedError(RezkaStreamError):
    """The direct AJAX query answered with a logical failure."""


class StreamNotFoundError(RezkaStreamError):
    """A fetched page carried no embedded stream payload."""


class TransportError(RezkaStreamError):
    """Network or HTTP failure while talking to the site."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url

    @property
    def is_service_unavailable(self) -> bool:
        return self.status == 503


class ResolutionError(RezkaStreamError):
    """No usable stream was found for the requested item."""

    def __init__(
        self,
        message: str,
        *,
        media_id: str = "",
        translation_id: str = "",
        season_id: str | None = None,
        episode_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.media_id = media_id
        self.translation_id = translation_id
        self.season_id = season_id
        self.episode_id = episode_id

    def __str__(self) -> str:
        base = super().__str__()
        target = f"media={self.media_id or '?'} translation={self.translation_id}"
        if self.season_id is not None:
            target += f" season={self.season_id}"
        if self.episode_id is not None:
            target += f" episode={self.episode_id}"
        return f"{base} ({target})"
