from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, RedisDsn, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CustomSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(CustomSettings):
    ENVIRONMENT: Literal["local", "dev", "prod"] = Field(default="local")
    SERVICE_NAME: str = Field(default="line-chat-orchestrator")
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOGS: bool = Field(default=True)


class RedisSettings(CustomSettings):
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)
    REDIS_PASSWORD: SecretStr = Field(default="")
    REDIS_URL: RedisDsn | str = Field(default="")
    CELERY_BROKER_URL: str = Field(default="")
    CELERY_RESULT_BACKEND: str = Field(default="")

    @model_validator(mode="before")
    def validate_redis_url(cls, data: dict):
        if isinstance(data, dict) and not data.get("REDIS_URL"):
            password = data.get("REDIS_PASSWORD", "")
            _built_uri = RedisDsn.build(
                scheme="redis",
                host=data.get("REDIS_HOST", "localhost"),
                port=int(data.get("REDIS_PORT", 6379)),
                path=f"/{data.get('REDIS_DB', 0)}",
                password=password if password else None,
            ).unicode_string()
            data["REDIS_URL"] = _built_uri
        # Celery falls back to the same Redis instance
        redis_url = data.get("REDIS_URL", "redis://localhost:6379/0")
        if not data.get("CELERY_BROKER_URL"):
            data["CELERY_BROKER_URL"] = redis_url
        if not data.get("CELERY_RESULT_BACKEND"):
            data["CELERY_RESULT_BACKEND"] = redis_url
        return data


class LineSettings(CustomSettings):
    """Credentials and endpoint for the LINE Messaging API.

    Env vars:
    - LINE_CHANNEL_SECRET
    - LINE_CHANNEL_ACCESS_TOKEN
    - LINE_REPLY_ENDPOINT
    - LINE_REQUEST_TIMEOUT_SECONDS
    """

    LINE_CHANNEL_SECRET: SecretStr = Field(default="")
    LINE_CHANNEL_ACCESS_TOKEN: SecretStr = Field(default="")
    LINE_REPLY_ENDPOINT: str = Field(
        default="https://api.line.me/v2/bot/message/reply"
    )
    LINE_REQUEST_TIMEOUT_SECONDS: float = Field(default=10.0)


class ModelSettings(CustomSettings):
    """Generative model endpoint and its fixed sampling parameters.

    Sampling parameters are deployment-wide; requests cannot tune them.
    """

    OPENAI_API_KEY: SecretStr = Field(default="")
    OPENAI_BASE_URL: str = Field(default="https://api.openai.com/v1")
    MODEL_NAME: str = Field(default="gpt-3.5-turbo-instruct")
    MODEL_TIMEOUT_SECONDS: float = Field(default=30.0)
    MAX_TOKENS: int = Field(default=500)
    TEMPERATURE: float = Field(default=0.5)
    TOP_P: float = Field(default=1.0)
    TOP_K: int = Field(default=250)


class ConversationSettings(CustomSettings):
    HISTORY_KEY_PREFIX: str = Field(default="chat:history")
    TEMPLATE_KEY_PREFIX: str = Field(default="chat:template")
    PROMPT_TEMPLATE_NAME: str = Field(default="prompt-template")
    RETENTION_WINDOW_SECONDS: int = Field(default=3600, ge=1)
    EXECUTION_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    CHAT_QUEUE_NAME: str = Field(default="chat")
    FALLBACK_REPLY_TEXT: str = Field(
        default="Sorry, cannot accept your message. Please retry."
    )


class ReplyRetrySettings(CustomSettings):
    """Retry policy for reply delivery.

    Env vars are prefixed with REPLY_RETRY_, e.g. REPLY_RETRY_MAX_ATTEMPTS.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPLY_RETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    MAX_ATTEMPTS: int = Field(default=3, ge=1)
    BASE_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    MULTIPLIER: float = Field(default=2.0, ge=1)
    JITTER: Literal["full", "none"] = Field(default="full")


class Settings(BaseModel):
    APP: AppSettings = Field(default_factory=AppSettings)
    REDIS: RedisSettings = Field(default_factory=RedisSettings)
    LINE: LineSettings = Field(default_factory=LineSettings)
    MODEL: ModelSettings = Field(default_factory=ModelSettings)
    CONVERSATION: ConversationSettings = Field(default_factory=ConversationSettings)
    REPLY_RETRY: ReplyRetrySettings = Field(default_factory=ReplyRetrySettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()


SETTINGS = get_settings()
