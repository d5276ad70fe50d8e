from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class SyncSettings(BaseModel):
    """Тайминги движка синхронизации (секунды)"""
    debounce_quiet_period: float = 1.0
    relaxed_quiet_period: float = 5.0
    min_save_interval: float = 0.0
    burst_threshold: int = 20
    settle_delay: float = 2.0


class EnrichmentSettings(BaseModel):
    """Параметры конвейера обогащения ссылок"""
    service_url: str = "http://localhost:8080/link-preview"
    timeout: Optional[float] = None
    asset_poll_attempts: int = 40
    asset_poll_interval: float = 0.05
    image_probe_attempts: int = 3
    image_probe_interval: float = 0.2
    loading_height: float = 120.0
    cache_size: int = 256


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./canvas.db"
    database_echo: bool = False
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    log_level: str = "INFO"

    # Синхронизация
    debounce_quiet_period: float = 1.0
    relaxed_quiet_period: float = 5.0
    min_save_interval: float = 0.0
    burst_threshold: int = 20
    settle_delay: float = 2.0

    # Обогащение ссылок
    enrichment_service_url: str = "http://localhost:8080/link-preview"
    enrichment_timeout: Optional[float] = None
    asset_poll_attempts: int = 40
    asset_poll_interval: float = 0.05
    image_probe_attempts: int = 3
    image_probe_interval: float = 0.2
    loading_height: float = 120.0
    enrichment_cache_size: int = 256

    model_config = {"env_file": ".env", "extra": "ignore"}

    def sync_settings(self) -> SyncSettings:
        return SyncSettings(
            debounce_quiet_period=self.debounce_quiet_period,
            relaxed_quiet_period=self.relaxed_quiet_period,
            min_save_interval=self.min_save_interval,
            burst_threshold=self.burst_threshold,
            settle_delay=self.settle_delay,
        )

    def enrichment_settings(self) -> EnrichmentSettings:
        return EnrichmentSettings(
            service_url=self.enrichment_service_url,
            timeout=self.enrichment_timeout,
            asset_poll_attempts=self.asset_poll_attempts,
            asset_poll_interval=self.asset_poll_interval,
            image_probe_attempts=self.image_probe_attempts,
            image_probe_interval=self.image_probe_interval,
            loading_height=self.loading_height,
            cache_size=self.enrichment_cache_size,
        )


settings = Settings()
