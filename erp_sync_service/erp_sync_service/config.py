"""Environment configuration for the ERP sync worker."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings read from the environment (or a ``.env`` file).

    Construction fails with a ``ValidationError`` when a required variable is
    missing or malformed, so the process refuses to start half-configured.
    """

    # Kafka
    KAFKA_BROKER: str = Field(..., min_length=1)
    KAFKA_USERNAME: Optional[str] = None
    KAFKA_PASSWORD: Optional[str] = None
    KAFKA_CLIENT_ID: str = "grocery-erp-sync"
    KAFKA_GROUP_ID: str = "erp-sync-group"
    KAFKA_PARTITIONS_CONCURRENCY: int = Field(3, ge=1, le=64)

    # Catalog API
    BACKEND_URL: str
    HTTP_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    SKU_CACHE_TTL_SECONDS: float = Field(0.0, ge=0)

    # Environment
    ENVIRONMENT: Literal["development", "production"] = "development"
    LOG_LEVEL: Optional[Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]] = None
    LOG_FILE: Optional[str] = "logs/worker.log"
    HEALTH_PORT: int = Field(8000, ge=0, le=65535)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("BACKEND_URL")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("BACKEND_URL must be an http:// or https:// URL")
        return v.rstrip("/")

    @field_validator("KAFKA_USERNAME", "KAFKA_PASSWORD", "LOG_FILE")
    @classmethod
    def empty_as_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @model_validator(mode="after")
    def check_sasl_credentials(self) -> "Settings":
        if bool(self.KAFKA_USERNAME) != bool(self.KAFKA_PASSWORD):
            raise ValueError("KAFKA_USERNAME and KAFKA_PASSWORD must be set together")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def log_level(self) -> str:
        """Explicit LOG_LEVEL, otherwise DEBUG in development and INFO in production."""
        if self.LOG_LEVEL:
            return self.LOG_LEVEL
        return "INFO" if self.is_production else "DEBUG"

    def kafka_consumer_config(self) -> dict:
        """Build the confluent-kafka consumer configuration.

        Offsets are stored manually after each message is processed and
        committed by the auto-commit timer. New consumer groups start at the
        latest offset so historical catalog events are never replayed.
        """
        config = {
            "bootstrap.servers": self.KAFKA_BROKER,
            "client.id": self.KAFKA_CLIENT_ID,
            "group.id": self.KAFKA_GROUP_ID,
            "auto.offset.reset": "latest",
            "enable.auto.commit": True,
            "enable.auto.offset.store": False,
            "session.timeout.ms": 30000,
            "heartbeat.interval.ms": 3000,
            "max.poll.interval.ms": 300000,
            "retry.backoff.ms": 300,
        }
        if self.KAFKA_USERNAME and self.KAFKA_PASSWORD:
            config.update(
                {
                    "security.protocol": "SASL_SSL" if self.is_production else "SASL_PLAINTEXT",
                    "sasl.mechanism": "PLAIN",
                    "sasl.username": self.KAFKA_USERNAME,
                    "sasl.password": self.KAFKA_PASSWORD,
                }
            )
        else:
            config["security.protocol"] = "SSL" if self.is_production else "PLAINTEXT"
        return config


@lru_cache()
def get_settings() -> Settings:
    return Settings()
