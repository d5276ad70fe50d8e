"""Клиент внешнего сервиса метаданных ссылок"""
import logging
from typing import Dict, Optional

import httpx
from pydantic import ValidationError

from app.domains.enrichment.schemas import EnrichmentRequest, EnrichmentResult

logger = logging.getLogger(__name__)


class EnrichmentError(Exception):
    """Сервис метаданных не вернул пригодный результат"""


class EnrichmentClient:
    """HTTP клиент сервиса метаданных.

    Таймаут на сам запрос по умолчанию не задаётся (timeout=None).
    """

    def __init__(
        self,
        service_url: str,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.service_url = service_url
        self.timeout = timeout
        self.headers = headers or {}
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Получение или создание HTTP клиента"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self._http_client

    async def fetch_metadata(self, request: EnrichmentRequest) -> EnrichmentResult:
        """Запрос метаданных ссылки"""
        try:
            client = await self._get_http_client()
            response = await client.post(
                self.service_url, json=request.model_dump(by_alias=True)
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise EnrichmentError(f"Enrichment service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise EnrichmentError(f"Enrichment request failed: {e}") from e
        except ValueError as e:
            raise EnrichmentError("Enrichment service returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise EnrichmentError("Enrichment response must be an object")
        if payload.get("error"):
            raise EnrichmentError(str(payload["error"]))

        try:
            result = EnrichmentResult.model_validate(payload)
        except ValidationError as e:
            raise EnrichmentError(f"Malformed enrichment response: {e}") from e

        logger.debug(f"Metadata for {request.url} ({request.platform}): title={result.title!r}")
        return result

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
