from typing import Annotated

from pydantic import (
    AnyUrl,
    BeforeValidator,
    computed_field,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # API Configuration
    API_V1_STR: str = "/api/v1"

    # Server Configuration
    SERVER_HOST: str = "http://localhost"
    SERVER_PORT: int = 8081

    # CORS Configuration
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str,
        BeforeValidator(lambda x: x.split(",") if isinstance(x, str) else x),
    ] = []

    # Project Configuration
    PROJECT_NAME: str = "BogoFit Shop"

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # Storefront origin used to resolve local sample images ("/images/...")
    SITE_BASE_URL: str = "http://localhost:3000"
    # Proxy endpoint for external images ("<url>?url=..."); empty fetches directly
    IMAGE_PROXY_URL: str = ""

    # Upstream fitting workflow
    WORKFLOW_BASE_URL: str = "http://localhost:3000"
    WORKFLOW_RUN_PATH: str = "/api/virtual-fitting/run_workflow"
    WORKFLOW_VIDEO_PATH: str = "/api/virtual-fitting/run_i2v"
    FITTING_CLIENT_ID: str = "0d7d0263c7f94a4a90cf2dbbff3a45bf"

    # Timeouts (seconds)
    WORKFLOW_TIMEOUT_SECONDS: float = 60
    WORKFLOW_BACKGROUND_TIMEOUT_SECONDS: float = 120
    VIDEO_TIMEOUT_SECONDS: float = 120
    IMAGE_FETCH_TIMEOUT_SECONDS: float = 15

    # Progress ramps (percent, milliseconds)
    IMAGE_RAMP_START: int = 5
    IMAGE_RAMP_TARGET: int = 100
    IMAGE_RAMP_DURATION_MS: int = 19000
    IMAGE_DONE_PERCENT: int = 90
    VIDEO_RAMP_START: int = 90
    VIDEO_RAMP_TARGET: int = 100
    VIDEO_RAMP_DURATION_MS: int = 10000
    PROGRESS_TICK_MS: int = 100

    # Upload validation
    ALLOWED_IMAGE_MIME_TYPES: str = "image/jpeg,image/jpg,image/png,image/webp"
    # Applied to direct uploads only; 0 disables the check
    UPLOAD_MAX_SIZE_MB: int = 10

    # Best-effort image URL recovery from malformed workflow responses
    CDN_IMAGE_URL_PATTERN: str = r"https://cdn\.klingai\.com/[^\s\"]+\.png"

    # Google AI Configuration
    GOOGLE_API_KEY: str = ""
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    GEMINI_TEXT_MODEL: str = "gemini-2.0-flash"
    VEO_VIDEO_MODEL: str = "veo-3.1-generate-preview"
    VIDEO_POLL_INTERVAL_SECONDS: float = 10
    MOCK_VIDEO_URL: str = "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"

    # Redis Configuration
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ALLOWED_MIME_TYPES(self) -> tuple[str, ...]:
        return tuple(t.strip() for t in self.ALLOWED_IMAGE_MIME_TYPES.split(",") if t.strip())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def UPLOAD_MAX_SIZE_BYTES(self) -> int | None:
        if self.UPLOAD_MAX_SIZE_MB <= 0:
            return None
        return self.UPLOAD_MAX_SIZE_MB * 1024 * 1024

    @computed_field  # type: ignore[prop-decorator]
    @property
    def CELERY_BROKER_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @computed_field
    @property
    def CELERY_RESULT_BACKEND(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
