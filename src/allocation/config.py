from typing import Union

from pydantic import (
    Field,
    PostgresDsn,
    RedisDsn,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerDescriptionSettings(BaseSettings):
    API_STR: str = "/v1"

    OPENAPI_URL: str = f"{API_STR}/openapi.json"

    REST_SERVICE_NAME: str = "stock-allocation"
    REST_SERVICE_DESCRIPTION: str = "주문 배치 할당 및 배송일 산정 서비스"
    REST_SERVICE_VERSION: str = "0.1.0"


class DataSettings(BaseSettings):
    DB_URI: Union[PostgresDsn, str] = Field(
        validation_alias="DATABASE_PG_URL",
        default="sqlite+aiosqlite:///:memory:",
    )


class MessageBrokerSettings(BaseSettings):
    REDIS_URI: Union[RedisDsn, str] = Field(
        validation_alias="REDIS_URL",
        default="redis://localhost:6379/0",
    )


class AllocationSettings(BaseSettings):
    MAX_COMMIT_RETRIES: int = Field(
        validation_alias="ALLOCATION_MAX_COMMIT_RETRIES",
        default=3,
    )


class Settings(BaseSettings):
    DEBUG: bool = Field(validation_alias="DEBUG", default=True)

    desc: ServerDescriptionSettings = ServerDescriptionSettings()
    data: DataSettings = DataSettings()
    broker: MessageBrokerSettings = MessageBrokerSettings()
    allocation: AllocationSettings = AllocationSettings()

    model_config = SettingsConfigDict(case_sensitive=True)
