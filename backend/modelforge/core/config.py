from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "ModelForge API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Generation service
    GENERATION_PROVIDER: str = "tripo"  # tripo, mock
    TRIPO_API_KEY: str = ""
    TRIPO_BASE_URL: str = "https://api.tripo3d.ai/v2/openapi"
    TRIPO_MODEL_VERSION: str = "v2.5-20250123"
    TRIPO_TEXTURE: bool = False
    TRIPO_PBR: bool = False
    TRIPO_AUTO_SIZE: bool = True
    GENERATION_REQUEST_TIMEOUT: int = 60

    # Prompt handling
    PROMPT_CLEANUP_THRESHOLD: int = 200
    PROMPT_MAX_LENGTH: int = 500

    # Vision / image description
    OPENAI_API_KEY: str = ""
    VISION_MODEL: str = "gpt-4o"
    VISION_MAX_TOKENS: int = 400
    AI_REQUEST_TIMEOUT: int = 60
    AI_MAX_RETRIES: int = 3

    # Job polling
    POLL_INTERVAL_SECONDS: float = 2.0
    RETRY_INTERVAL_SECONDS: float = 3.0
    POLL_MAX_RETRIES: int = 3
    POLL_BACKOFF_FACTOR: float = 1.0
    POLL_MAX_RETRY_INTERVAL_SECONDS: float = 30.0
    SIMULATED_PROGRESS_STEP: int = 2
    SIMULATED_PROGRESS_JITTER: int = 3
    SIMULATED_PROGRESS_CEILING: int = 98
    REAL_CHECK_INTERVAL_SECONDS: float = 10.0
    CONFIG_ERROR_PROGRESS_STEP: int = 5
    MAX_SIMULATED_CYCLES: Optional[int] = None
    MAX_TRACKED_JOBS: Optional[int] = 500

    # Artifact download
    MAX_ARTIFACT_SIZE_MB: int = 200
    SUPPORTED_IMAGE_FORMATS: List[str] = ["jpg", "jpeg", "png", "webp"]
    MAX_IMAGE_SIZE_MB: int = 10

    # Hand-off to the external CAD application
    HANDOFF_IMPORT_URL: str = "https://fishcad.com/api/import-stl"
    HANDOFF_STATUS_URL: str = "https://fishcad.com/api/import-status"
    HANDOFF_TIMEOUT: int = 15
    HANDOFF_MAX_RETRIES: int = 2
    HANDOFF_SOURCE: str = "modelforge"


settings = Settings()
