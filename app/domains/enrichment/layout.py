from typing import Optional

from app.domains.enrichment.schemas import EnrichmentResult

MIN_IMAGE_HEIGHT = 60
TEXT_RESERVE_WITH_TEXT = 100
TEXT_RESERVE_IMAGE_ONLY = 40

LOADING_IMAGE = (
    "data:image/svg+xml;utf8,"
    "<svg xmlns='http://www.w3.org/2000/svg' width='64' height='64'>"
    "<circle cx='32' cy='32' r='24' fill='none' stroke='%23999' stroke-width='6' stroke-dasharray='40 120'/>"
    "</svg>"
)


def compute_card_height(width: float, natural_width: int, natural_height: int, has_text: bool) -> int:
    """Высота карточки с сохранением пропорций изображения.

    max(60, round(width * h / w)) плюс место под заголовок и описание.
    """
    if natural_width <= 0 or natural_height <= 0:
        raise ValueError("Natural image size must be positive")
    image_height = max(MIN_IMAGE_HEIGHT, round(width * natural_height / natural_width))
    reserve = TEXT_RESERVE_WITH_TEXT if has_text else TEXT_RESERVE_IMAGE_ONLY
    return image_height + reserve


def normalize_image_ref(result: EnrichmentResult) -> Optional[str]:
    """Ссылка на изображение как есть: image, иначе thumbnail.

    Абсолютные и непрозрачные ссылки не переписываются, расширения не
    угадываются.
    """
    image = result.image or result.thumbnail
    if image is None:
        return None
    image = image.strip()
    return image or None
