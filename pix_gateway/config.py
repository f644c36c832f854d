"""Application configuration via environment variables."""

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class ProviderSettings(BaseModel):
    """Per-bank overrides, e.g. ``PROVIDERS__ITAU__TIMEOUT=10``."""

    base_url: str = ""
    auth_url: str = ""
    sandbox_url: str = ""
    timeout: int = 30
    max_retries: int = 3
    requires_mtls: bool = False
    priority: int = 0
    enabled: bool = True


class Settings(BaseSettings):
    log_level: str = "INFO"
    environment: str = "development"  # sandbox URLs unless "production"
    encryption_key: str = ""  # base64, 32 bytes decoded
    health_freshness_seconds: int = 60
    health_check_interval_seconds: float = 0  # 0: half the freshness window
    enable_mock_provider: bool = True
    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 0
    providers: dict[str, ProviderSettings] = {}

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"


settings = Settings()
