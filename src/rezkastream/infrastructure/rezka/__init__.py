from .catalog import CATEGORIES, parse_catalog_page, parse_search_results
from .decoder import PayloadDecoder, decode_payload, normalize_url, parse_stream_info, select_stream
from .scraper import (
    extract_embedded_stream_payload,
    extract_embedded_subtitles,
    next_episode,
    scrape_media_page,
    scrape_translator_slugs,
)

__all__ = [
    "CATEGORIES",
    "PayloadDecoder",
    "decode_payload",
    "extract_embedded_stream_payload",
    "extract_embedded_subtitles",
    "next_episode",
    "normalize_url",
    "parse_catalog_page",
    "parse_search_results",
    "parse_stream_info",
    "scrape_media_page",
    "scrape_translator_slugs",
    "select_stream",
]
