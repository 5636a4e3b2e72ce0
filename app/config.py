from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

# Project root (parent of app/) - used so .env is found regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Explicitly load .env into os.environ so it works in tests and subprocesses
load_dotenv(_PROJECT_ROOT / ".env")


class Settings(BaseSettings):
    app_name: str = "report-enhancer-api"
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", json_schema_extra={"env": "LOG_LEVEL"})
    port: int = Field(default=8000, json_schema_extra={"env": "PORT"})

    # Report context store
    context_max_size: int = Field(
        default=5000, ge=1, json_schema_extra={"env": "CONTEXT_MAX_SIZE"}
    )
    enhancement_retention: int = Field(
        default=5, ge=1, json_schema_extra={"env": "ENHANCEMENT_RETENTION"}
    )
    context_idle_max_age_minutes: int = Field(
        default=60, ge=1, json_schema_extra={"env": "CONTEXT_IDLE_MAX_AGE_MINUTES"}
    )
    eviction_interval_seconds: int = Field(
        default=300, ge=1, json_schema_extra={"env": "EVICTION_INTERVAL_SECONDS"}
    )

    # LLM / LiteLLM
    llm_enabled: bool = Field(default=False, json_schema_extra={"env": "LLM_ENABLED"})
    llm_model: str = Field(
        default="gpt-4o-mini", json_schema_extra={"env": "LLM_MODEL"}
    )
    litellm_api_key: Optional[str] = Field(
        default=None, json_schema_extra={"env": "LITELLM_API_KEY"}
    )
    litellm_api_base: Optional[str] = Field(
        default=None, json_schema_extra={"env": "LITELLM_API_BASE"}
    )

    @property
    def is_production(self) -> bool:
        """Check if the current environment is production."""
        return self.environment.lower() == "production"

    @property
    def is_test(self) -> bool:
        """Check if the current environment is test."""
        return self.environment.lower() == "test"

    class ConfigDict:
        env_file = str(_PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"
        extra = "allow"  # Allow extra environment variables


def get_settings() -> Settings:
    """Get application settings from the environment."""
    return Settings()
