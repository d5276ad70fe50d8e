"""Обогащение вставленных ссылок метаданными.

Сущность ссылки появляется в хранилище раньше своего ассета, поэтому конвейер
сначала дожидается ассета опросом, а уже потом ставит заглушку, запрашивает
метаданные и подгоняет размер карточки. Каждая сущность обрабатывается своей
задачей, без общей блокировки.
"""
import asyncio
import logging
from typing import Optional, Set

from app.core.config import EnrichmentSettings, settings
from app.core.events import EventSink, LoggingEventSink
from app.domains.canvas.entities import ChangeOrigin, ChangeScope, StoreChange
from app.domains.canvas.store import DocumentStore
from app.domains.enrichment.cache import EnrichmentCache
from app.domains.enrichment.client import EnrichmentClient, EnrichmentError
from app.domains.enrichment.images import ImageProbe, ImageProbeError
from app.domains.enrichment.layout import LOADING_IMAGE, compute_card_height, normalize_image_ref
from app.domains.enrichment.platforms import classify_platform
from app.domains.enrichment.schemas import EnrichmentRequest, EnrichmentResult
from app.utils.async_tools import await_condition

logger = logging.getLogger(__name__)


class EnrichmentPipeline:
    def __init__(
        self,
        store: DocumentStore,
        client: EnrichmentClient,
        config: Optional[EnrichmentSettings] = None,
        events: Optional[EventSink] = None,
        image_probe: Optional[ImageProbe] = None,
        cache: Optional[EnrichmentCache] = None,
    ):
        self.store = store
        self.client = client
        self.config = config or settings.enrichment_settings()
        self.events = events or LoggingEventSink(logger)
        self.image_probe = image_probe
        self.cache = cache or EnrichmentCache(self.config.cache_size)
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(
                self._on_change, origin=ChangeOrigin.USER, scope=ChangeScope.DOCUMENT
            )

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in list(self._tasks):
            task.cancel()

    async def wait_idle(self) -> None:
        """Ожидание завершения всех начатых обогащений"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _on_change(self, change: StoreChange) -> None:
        for entity in change.added_link_references():
            props = entity.get("props", {})
            # уже связанные с ассетом сущности (гидратация) не обогащаются повторно
            if props.get("assetId"):
                continue
            url = props.get("url")
            if not url:
                continue
            self.enrich(entity["id"], url)

    def enrich(self, entity_id: str, url: str) -> asyncio.Task:
        """Запуск обогащения одной сущности в отдельной задаче"""
        task = asyncio.get_running_loop().create_task(self._enrich(entity_id, url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _enrich(self, entity_id: str, url: str) -> bool:
        try:
            return await self._run(entity_id, url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Enrichment of {entity_id} failed: {e}")
            self.events.emit("enrichment.failed", entity_id=entity_id, error=str(e))
            return False

    async def _run(self, entity_id: str, url: str) -> bool:
        platform = classify_platform(url)
        self.events.emit("enrichment.started", entity_id=entity_id, url=url, platform=platform)

        asset_id = await await_condition(
            lambda: self._materialized_asset_id(entity_id),
            self.config.asset_poll_attempts,
            self.config.asset_poll_interval,
        )
        if asset_id is None:
            logger.info(f"Asset for {entity_id} never appeared, skipping enrichment")
            self.events.emit("enrichment.asset_timeout", entity_id=entity_id)
            return False

        self._apply_placeholder(entity_id, asset_id)

        request = EnrichmentRequest(url=url, entity_id=entity_id, platform=platform)
        try:
            result = await self.client.fetch_metadata(request)
        except EnrichmentError as e:
            logger.warning(f"Metadata request for {url} failed: {e}")
            self.events.emit("enrichment.request_failed", entity_id=entity_id, error=str(e))
            return False

        self.cache.put(entity_id, url, result)
        return await self.apply_result(entity_id, asset_id, result)

    def _materialized_asset_id(self, entity_id: str) -> Optional[str]:
        entity = self.store.get_entity(entity_id)
        if entity is None:
            return None
        asset_id = entity.get("props", {}).get("assetId")
        if asset_id and self.store.get_asset(asset_id) is not None:
            return asset_id
        return None

    def _apply_placeholder(self, entity_id: str, asset_id: str) -> None:
        asset = self.store.get_asset(asset_id)
        asset.setdefault("props", {})["image"] = LOADING_IMAGE
        self.store.update_asset(asset)
        self.store.update_entity(entity_id, {"props": {"h": self.config.loading_height}})

    async def apply_result(self, entity_id: str, asset_id: str, result: EnrichmentResult) -> bool:
        """Запись метаданных в ассет, обновление сущности и подгонка высоты"""
        asset = self.store.get_asset(asset_id)
        if asset is None or self.store.get_entity(entity_id) is None:
            self.events.emit("enrichment.target_gone", entity_id=entity_id)
            return False

        image = normalize_image_ref(result)
        props = asset.setdefault("props", {})
        props["title"] = result.title or props.get("title") or ""
        props["description"] = result.description or props.get("description") or ""
        props["favicon"] = result.favicon or props.get("favicon") or ""
        props["image"] = image or ""
        self.store.update_asset(asset)

        # редактор перечитывает ассет только при смене ссылки на него
        self.store.update_entity(entity_id, {"props": {"assetId": None}})
        self.store.update_entity(entity_id, {"props": {"assetId": asset_id}})

        size = await self._natural_size(result, image)
        if size is not None:
            entity = self.store.get_entity(entity_id)
            if entity is not None:
                width = entity.get("props", {}).get("w", 0)
                height = compute_card_height(width, size[0], size[1], result.has_text)
                self.store.update_entity(entity_id, {"props": {"h": height}})
                self.events.emit("enrichment.resized", entity_id=entity_id, width=width, height=height)

        self.events.emit("enrichment.applied", entity_id=entity_id, title=props["title"])
        return True

    async def _natural_size(self, result: EnrichmentResult, image: Optional[str]) -> Optional[tuple]:
        if result.natural_size is not None:
            return result.natural_size
        if not image or self.image_probe is None:
            return None
        try:
            return await self.image_probe.probe(image)
        except ImageProbeError as e:
            logger.info(f"Image size unknown: {e}")
            return None

    async def reapply(self, entity_id: str) -> bool:
        """Повторное применение сохранённого в памяти результата"""
        result = self.cache.get(entity_id)
        if result is None:
            # пересозданная сущность с той же ссылкой
            entity = self.store.get_entity(entity_id)
            url = (entity or {}).get("props", {}).get("url")
            result = self.cache.get_by_url(url) if url else None
        if result is None:
            return False
        asset_id = self._materialized_asset_id(entity_id)
        if asset_id is None:
            return False
        return await self.apply_result(entity_id, asset_id, result)
