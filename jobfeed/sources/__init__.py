from .base import ListingSource
from .api import ApiListingSource, DISPLAY_NAMES, display_name_for, extract_items

from jobfeed.config import PipelineConfig
from jobfeed.log import get_logger

log = get_logger(__name__)

__all__ = [
    "ListingSource", "ApiListingSource", "DISPLAY_NAMES",
    "display_name_for", "extract_items", "get_sources",
]


def get_sources(config: PipelineConfig) -> dict[str, ListingSource]:
    """One client per configured source, keyed by source name, in config order."""
    sources: dict[str, ListingSource] = {}
    for src in config.sources:
        sources[src.name] = ApiListingSource(src)
    if not sources:
        log.warning("No listing sources configured; sync will be a no-op")
    return sources
