"""Environment variable loading and configuration settings."""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import (
    AppConfig,
    DiscoveryConfig,
    Environment,
    LogLevel,
    ProviderConfig,
    ProviderType,
    ServerConfig,
    ToolsConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(Environment.DEVELOPMENT, alias="ENVIRONMENT")
    debug: bool = Field(False, alias="DEBUG")

    # Server Configuration
    api_host: str = Field("127.0.0.1", alias="API_HOST")
    api_port: int = Field(8001, alias="API_PORT")
    log_level: LogLevel = Field(LogLevel.INFO, alias="LOG_LEVEL")
    enable_logging: bool = Field(True, alias="ENABLE_LOGGING")
    max_concurrent_requests: int = Field(10, alias="MAX_CONCURRENT_REQUESTS")
    request_timeout: float = Field(120.0, alias="REQUEST_TIMEOUT")

    # Discovery Configuration
    model_refresh_interval: float = Field(300.0, alias="MODEL_REFRESH_INTERVAL")
    model_health_check_interval: float = Field(600.0, alias="MODEL_HEALTH_CHECK_INTERVAL")

    # Provider Configuration
    provider_type: ProviderType = Field(ProviderType.OPENAI, alias="PROVIDER_TYPE")
    provider_api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("PROVIDER_API_KEY", "OPENAI_API_KEY")
    )
    provider_base_url: Optional[str] = Field(None, alias="PROVIDER_BASE_URL")
    provider_vendor: str = Field("openai", alias="PROVIDER_VENDOR")
    expected_vendor: Optional[str] = Field(None, alias="EXPECTED_VENDOR")
    default_max_input_tokens: int = Field(128000, alias="DEFAULT_MAX_INPUT_TOKENS")

    # Tool Configuration
    tool_timeout: float = Field(30.0, alias="TOOL_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def to_app_config(self) -> AppConfig:
        """Convert settings to AppConfig model."""
        return AppConfig(
            environment=self.environment,
            debug=self.debug,
            server=ServerConfig(
                host=self.api_host,
                port=self.api_port,
                log_level=self.log_level,
                enable_logging=self.enable_logging,
                max_concurrent_requests=self.max_concurrent_requests,
                request_timeout=self.request_timeout,
            ),
            discovery=DiscoveryConfig(
                refresh_interval=self.model_refresh_interval,
                health_check_interval=self.model_health_check_interval,
            ),
            provider=ProviderConfig(
                provider_type=self.provider_type,
                api_key=self.provider_api_key,
                base_url=self.provider_base_url,
                vendor=self.provider_vendor,
                expected_vendor=self.expected_vendor,
                default_max_input_tokens=self.default_max_input_tokens,
            ),
            tools=ToolsConfig(timeout=self.tool_timeout),
        )


def load_settings() -> Settings:
    """Load settings from environment variables and .env file."""
    return Settings()


def get_config() -> AppConfig:
    """Get application configuration."""
    settings = load_settings()
    return settings.to_app_config()
