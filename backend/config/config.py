"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    
    All settings have sensible defaults for development but require
    explicit configuration in production environments.
    """
    
    model_config = SettingsConfigDict(
        env_file="../.env",  # Load from project root (relative to backend/)
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )
    
    # Application
    app_name: str = Field(default="Imaging Triage", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    
    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    
    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173", "http://localhost:8080"],
        description="Allowed CORS origins"
    )
    
    # Persistence
    storage_backend: Literal["memory", "file", "arango"] = Field(
        default="file",
        description="Key-value persistence backend"
    )
    storage_path: str = Field(
        default="../data/local_storage.json",
        description="JSON file used by the file backend"
    )
    storage_namespace: str = Field(default="mock_db", description="Prefix for collection keys")
    session_key: str = Field(default="mock_supabase_session", description="Key holding the current session")
    users_key: str = Field(default="mock_users", description="Key holding the user list")
    
    # Simulated latency (seconds)
    auth_delay: float = Field(default=0.5, ge=0, description="Sign-up / sign-in latency")
    sign_out_delay: float = Field(default=0.2, ge=0, description="Sign-out latency")
    query_delay: float = Field(default=0.1, ge=0, description="Query resolution latency")
    insert_delay: float = Field(default=0.2, ge=0, description="Insert resolution latency")
    upload_delay: float = Field(default=0.5, ge=0, description="Upload latency")
    function_delay: float = Field(default=1.5, ge=0, description="Mock AI inference latency")
    
    # Object storage
    placeholder_public_url: str = Field(
        default="https://images.unsplash.com/photo-1516549655169-df83a0774514?w=800&q=80",
        description="URL returned for every uploaded object"
    )
    
    # AI gateway (OpenAI-compatible)
    ai_gateway_api_key: str = Field(default="", description="AI gateway API key")
    ai_gateway_base_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="AI gateway base URL"
    )
    ai_model: str = Field(default="google/gemini-2.5-pro", description="Vision model to use")
    ai_temperature: float = Field(default=0.3, description="Model temperature")
    ai_timeout_seconds: float = Field(default=120.0, description="Gateway request timeout")
    use_mock_functions: bool = Field(
        default=True,
        description="Serve remote functions from the canned emulator instead of the gateway"
    )
    
    # ArangoDB (storage_backend == "arango")
    arango_host: str = Field(default="http://localhost:8529", description="ArangoDB host URL")
    arango_username: str = Field(default="root", description="ArangoDB username")
    arango_password: str = Field(default="", description="ArangoDB password")
    arango_database: str = Field(default="imaging_triage", description="ArangoDB database name")
    
    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )
    
    def get_safe_config_dict(self) -> dict:
        """Return configuration dict with secrets redacted for logging."""
        config = self.model_dump()
        # Redact sensitive values
        if config.get("ai_gateway_api_key"):
            config["ai_gateway_api_key"] = "***REDACTED***"
        if config.get("arango_password"):
            config["arango_password"] = "***REDACTED***"
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.
    
    Settings are loaded once and cached for the application lifetime.
    Use dependency injection in FastAPI routes for testability.
    """
    return Settings()
