# locotrack/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секреты и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from locotrack.common.constants import StoreBackend


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить LOCOTRACK_CONFIG)."""
    override = os.getenv("LOCOTRACK_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "locotrack"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Настройки развертывания."""
    TRACKING_SERVICE_HOST: str = "0.0.0.0"
    TRACKING_SERVICE_PORT: int = 3000
    TRACKING_SERVICE_INSTANCES_COUNT: int = 1
    CORS_ALLOW_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/locotrack.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "locotrack"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 10
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "locotrack"
    REDIS_MAX_CONNECTIONS: int = 20

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class TrackingSettings(BaseModel):
    """Настройки ядра трекинга."""
    LIVENESS_THRESHOLD_SECONDS: float = Field(default=15.0, gt=0)
    SWEEP_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    CLIENT_UPDATE_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    WS_SEND_QUEUE_SIZE: int = Field(default=100, ge=1)
    STORE_BACKEND: StoreBackend = StoreBackend.POSTGRES
    FALLBACK_TO_MEMORY: bool = True
    REALTIME_RELAY_ENABLED: bool = False
    REALTIME_RELAY_CHANNEL: str = "realtime"

    @model_validator(mode="after")
    def check_liveness_window(self) -> "TrackingSettings":
        """Окно живости должно быть больше интервала отправки координат клиентом."""
        if self.LIVENESS_THRESHOLD_SECONDS <= self.CLIENT_UPDATE_INTERVAL_SECONDS:
            raise ValueError(
                "LIVENESS_THRESHOLD_SECONDS должен быть больше "
                "CLIENT_UPDATE_INTERVAL_SECONDS, иначе статус будет «мигать»"
            )
        return self


class SecuritySettings(BaseModel):
    """Настройки доступа к административным эндпоинтам."""
    ADMIN_API_TOKEN: str = ""


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls, config_data: dict[str, Any] | None = None) -> "Settings":
        """
        Создаёт объект Settings из плоского config.json.
        Ключи раскладываются по секциям по именам полей.
        """
        if config_data is None:
            config_data = load_config_json()

        return cls(
            system=build_section(SystemSettings, config_data),
            deployment=build_section(
                DeploymentSettings,
                config_data,
                env_keys=("TRACKING_SERVICE_HOST", "TRACKING_SERVICE_PORT"),
            ),
            logging=build_section(LoggingSettings, config_data, env_keys=("LOG_LEVEL",)),
            database=build_section(
                DatabaseSettings,
                config_data,
                env_keys=("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"),
            ),
            redis=build_section(
                RedisSettings,
                config_data,
                env_keys=("REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD"),
            ),
            tracking=build_section(
                TrackingSettings,
                config_data,
                env_keys=("STORE_BACKEND", "REALTIME_RELAY_ENABLED"),
            ),
            security=build_section(SecuritySettings, config_data, env_keys=("ADMIN_API_TOKEN",)),
        )


SectionT = TypeVar("SectionT", bound=BaseModel)


def build_section(
    model_cls: type[SectionT],
    config_data: dict[str, Any],
    env_keys: tuple[str, ...] = (),
) -> SectionT:
    """
    Собирает секцию настроек из плоского словаря.

    Args:
        model_cls: Класс секции
        config_data: Содержимое config.json
        env_keys: Поля, которые можно переопределить переменной окружения

    Returns:
        Провалидированная секция
    """
    values: dict[str, Any] = {}
    for field_name in model_cls.model_fields:
        if field_name in env_keys and os.getenv(field_name):
            values[field_name] = os.environ[field_name]
        elif field_name in config_data:
            values[field_name] = config_data[field_name]
    return model_cls(**values)


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
