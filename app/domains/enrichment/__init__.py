from app.domains.enrichment.cache import EnrichmentCache
from app.domains.enrichment.client import EnrichmentClient, EnrichmentError
from app.domains.enrichment.images import ImageProbe, ImageProbeError
from app.domains.enrichment.layout import (
    LOADING_IMAGE, TEXT_RESERVE_IMAGE_ONLY, TEXT_RESERVE_WITH_TEXT,
    compute_card_height, normalize_image_ref
)
from app.domains.enrichment.pipeline import EnrichmentPipeline
from app.domains.enrichment.platforms import UNKNOWN_PLATFORM, classify_platform
from app.domains.enrichment.schemas import EnrichmentRequest, EnrichmentResult

__all__ = [
    "EnrichmentCache",
    "EnrichmentClient", "EnrichmentError",
    "ImageProbe", "ImageProbeError",
    "LOADING_IMAGE", "TEXT_RESERVE_IMAGE_ONLY", "TEXT_RESERVE_WITH_TEXT",
    "compute_card_height", "normalize_image_ref",
    "EnrichmentPipeline",
    "UNKNOWN_PLATFORM", "classify_platform",
    "EnrichmentRequest", "EnrichmentResult",
]
