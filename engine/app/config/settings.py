from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from engine.app.domain.processing_config import ProcessingConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    network_endpoint: str = Field("http://localhost:8080", validation_alias="NETWORK_ENDPOINT")
    network_request_timeout_seconds: float = Field(15.0, validation_alias="NETWORK_REQUEST_TIMEOUT_SECONDS")
    network_backend: str = Field("http", validation_alias="NETWORK_BACKEND")
    abi_backend: str = Field("json", validation_alias="ABI_BACKEND")

    # Resends after the first send; at most retry_limit + 1 submissions per message.
    retry_limit: int = Field(3, validation_alias="MESSAGE_RETRIES_LIMIT")
    base_expiration_timeout_ms: int = Field(40_000, validation_alias="MESSAGE_EXPIRATION_TIMEOUT")
    expiration_growth_factor: float = Field(1.5, validation_alias="MESSAGE_EXPIRATION_TIMEOUT_GROW_FACTOR")
    transaction_wait_timeout_ms: int = Field(60_000, validation_alias="TRANSACTION_WAIT_TIMEOUT")
    block_poll_interval_ms: int = Field(1_000, validation_alias="BLOCK_POLL_INTERVAL_MS")

    @field_validator("retry_limit")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator(
        "base_expiration_timeout_ms",
        "transaction_wait_timeout_ms",
        "block_poll_interval_ms",
        "network_request_timeout_seconds",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("expiration_growth_factor")
    @classmethod
    def _growth(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("must be >= 1.0")
        return value

    def processing_config(self) -> ProcessingConfig:
        return ProcessingConfig(
            retry_limit=self.retry_limit,
            base_expiration_timeout_ms=self.base_expiration_timeout_ms,
            expiration_growth_factor=self.expiration_growth_factor,
            transaction_wait_timeout_ms=self.transaction_wait_timeout_ms,
            block_poll_interval_ms=self.block_poll_interval_ms,
        )
