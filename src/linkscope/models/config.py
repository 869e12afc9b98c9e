"""Configuration models."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvSettings(BaseSettings):
    """Settings loaded from .env file (secrets and identity)."""

    openai_api_key: Optional[str] = Field(
        None, description="OpenAI API key used for direct analysis and by the proxy"
    )
    linkscope_username: Optional[str] = Field(
        None, description="Free-text username records are attributed to"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppConfig(BaseModel):
    """Application configuration from config.yaml."""

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Link table
    storage_path: Optional[str] = Field(
        None, description="Directory holding the link table (default: <config_dir>/storage)"
    )

    # Analyzer
    analyzer_mode: Literal["direct", "proxy"] = Field(
        default="proxy",
        description="'direct' calls the LLM with the local key, 'proxy' goes through the server",
    )
    proxy_url: str = Field(
        default="http://127.0.0.1:8000/api/analyze-link",
        description="Analyze proxy endpoint used in proxy mode",
    )
    openai_endpoint: str = Field(default="https://api.openai.com/v1/chat/completions")
    openai_model: str = Field(default="gpt-4o")
    max_tokens: int = Field(default=300, ge=16, le=4096)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    request_timeout_seconds: int = Field(default=20, ge=1, le=120)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    allowed_origins: List[str] = Field(
        default_factory=list, description="Extra CORS origins for browser front-ends"
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "host": "127.0.0.1",
            "port": 8000,
            "storage_path": "/home/user/.linkscope/storage",
            "analyzer_mode": "proxy",
            "openai_model": "gpt-4o",
            "request_timeout_seconds": 20,
        }
    })


class Session(BaseModel):
    """Caller identity and credential, read-only for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1)
    api_key: Optional[str] = Field(None, repr=False)
