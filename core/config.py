"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")

    # Application
    app_name: str = "A11yAudit"
    app_version: str = "0.1.0"

    # Backends: "memory" for local execution, "redis" for shared deployments
    queue_backend: str = Field(default="memory")
    store_backend: str = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Queue
    queue_name: str = Field(default="audit_jobs")
    visibility_timeout_seconds: int = Field(default=300, ge=1)
    max_delivery_count: int = Field(default=3, ge=1)
    low_priority_delay_seconds: int = Field(default=30, ge=0, le=900)

    # Worker pool
    worker_pool_size: int = Field(default=4, ge=1)
    worker_batch_size: int = Field(default=10, ge=1, le=10)
    worker_poll_interval_seconds: float = Field(default=1.0, ge=0.0)

    # Page fetching
    fetch_max_retries: int = Field(default=3, ge=1)
    fetch_base_delay_ms: int = Field(default=1000, ge=0)
    fetch_max_delay_ms: int = Field(default=10000, ge=0)
    fetch_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    navigation_timeout_ms: int = Field(default=30000, ge=1000)
    proxy_list: str = Field(default="", description="Comma-separated egress proxies, e.g. http://10.0.0.1:3128")
    axe_script_path: Optional[str] = Field(default=None, description="Local path to axe.min.js")
    axe_script_url: str = Field(default="https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.2/axe.min.js")
    screenshot_quality: int = Field(default=60, ge=1, le=100)

    # Semantic check (OpenAI-compatible chat completions)
    openai_api_key: Optional[SecretStr] = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_base_url: str = Field(default="https://api.openai.com")
    enable_semantic_check: bool = Field(default=True)
    semantic_max_text_length: int = Field(default=2000, ge=100)
    semantic_call_delay_seconds: float = Field(default=0.5, ge=0.0)

    # Batch submission
    max_batch_urls: int = Field(default=10, ge=1)
    batch_item_delay_seconds: float = Field(default=1.0, ge=0.0)

    # Report store
    report_ttl_days: int = Field(default=90, ge=1)
    memory_store_capacity: int = Field(default=1000, ge=1)

    # Performance
    request_timeout: int = Field(default=30)
    callback_timeout: int = Field(default=10)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Monitoring
    prometheus_enabled: bool = Field(default=True)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("queue_backend", "store_backend")
    @classmethod
    def validate_backend(cls, v):
        allowed = ["memory", "redis"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"Backend must be one of: {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @model_validator(mode="after")
    def validate_fetch_delays(self):
        """Backoff cap can never be below the first delay"""
        if self.fetch_max_delay_ms < self.fetch_base_delay_ms:
            raise ValueError("fetch_max_delay_ms must be >= fetch_base_delay_ms")

        # Workers in separate processes would never see each other's messages
        if self.is_production and self.queue_backend == "memory":
            raise ValueError("Production environment cannot run with the in-memory queue")

        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def proxies(self) -> List[str]:
        """Egress proxy pool parsed from PROXY_LIST"""
        return [p.strip() for p in self.proxy_list.split(",") if p.strip()]

    @property
    def semantic_check_enabled(self) -> bool:
        return self.enable_semantic_check and self.openai_api_key is not None

    def get_openai_key(self) -> Optional[str]:
        if self.openai_api_key is None:
            return None
        return self.openai_api_key.get_secret_value()

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def model_dump(self, **kwargs):
        """Override to mask sensitive fields when serializing"""
        data = super().model_dump(**kwargs)

        for field in ("openai_api_key", "redis_url", "proxy_list"):
            value = data.get(field)
            if not value:
                continue
            if hasattr(value, "get_secret_value"):
                value = value.get_secret_value()
            value = str(value)
            # Keep first 4 chars for identification
            data[field] = value[:4] + "*" * (len(value) - 4) if len(value) > 4 else "*" * len(value)

        return data


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
