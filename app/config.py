from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal, Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LearnWorlds
    learnworlds_api_key: str = ""
    learnworlds_api_url: str = "https://api.learnworlds.com"
    learnworlds_school_id: str = ""

    # Shopify
    shopify_api_secret: str = ""
    shopify_shop_domain: str = ""
    shopify_access_token: str = ""
    shopify_api_version: str = "2023-10"
    shopify_webhook_verification: bool = True

    # Outbound HTTP
    http_timeout_seconds: float = 15.0

    # Mapping persistence
    mapping_backend: Literal["file", "redis"] = "file"
    mapping_data_dir: Optional[Path] = None
    redis_url: str = "redis://localhost:6379/0"

    # Admin surface
    admin_api_key: str = ""

    # CORS
    cors_origins: str = "*"  # Comma-separated origins or * for dev

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    base_dir: Path = Path(__file__).parent.parent

    @property
    def cors_origin_list(self) -> list[str]:
        if self.cors_origins == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def mapping_dir(self) -> Path:
        """Where the mapping JSON documents live.

        Serverless hosts only offer /tmp as writable scratch, so production
        falls back there; local runs keep the files under the project.
        """
        if self.mapping_data_dir is not None:
            return Path(self.mapping_data_dir)
        if self.environment == "production":
            return Path("/tmp")
        return self.base_dir / "data"


# Global settings instance
settings = Settings()
