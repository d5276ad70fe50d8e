from collections import OrderedDict
from typing import Optional

from app.domains.enrichment.schemas import EnrichmentResult


class EnrichmentCache:
    """Последние результаты по сущности и по ссылке, только в памяти процесса"""

    def __init__(self, maxsize: int = 256):
        self.maxsize = maxsize
        self._by_entity: "OrderedDict[str, EnrichmentResult]" = OrderedDict()
        self._by_url: "OrderedDict[str, EnrichmentResult]" = OrderedDict()

    def put(self, entity_id: Optional[str], url: Optional[str], result: EnrichmentResult) -> None:
        if entity_id:
            self._store(self._by_entity, entity_id, result)
        if url:
            self._store(self._by_url, url, result)

    def get(self, entity_id: str) -> Optional[EnrichmentResult]:
        return self._by_entity.get(entity_id)

    def get_by_url(self, url: str) -> Optional[EnrichmentResult]:
        return self._by_url.get(url)

    def __len__(self) -> int:
        return len(self._by_entity)

    def _store(self, bucket: OrderedDict, key: str, result: EnrichmentResult) -> None:
        bucket[key] = result
        bucket.move_to_end(key)
        while len(bucket) > self.maxsize:
            bucket.popitem(last=False)
