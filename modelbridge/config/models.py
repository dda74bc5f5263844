"""Configuration models using Pydantic for type validation."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProviderType(str, Enum):
    """Supported chat model provider backends."""
    OPENAI = "openai"
    MOCK = "mock"


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = Field("127.0.0.1", description="Server bind host")
    port: int = Field(8001, description="Server port")
    log_level: LogLevel = Field(LogLevel.INFO, description="Logging level")
    enable_logging: bool = Field(True, description="Log everything, or errors only when disabled")
    max_concurrent_requests: int = Field(10, description="Maximum simultaneous in-flight requests")
    request_timeout: float = Field(120.0, description="Request timeout in seconds")

    @field_validator("port")
    @classmethod
    def clamp_port(cls, v):
        return int(_clamp(v, 1024, 65535))

    @field_validator("max_concurrent_requests")
    @classmethod
    def clamp_concurrency(cls, v):
        return int(_clamp(v, 1, 100))

    @field_validator("request_timeout")
    @classmethod
    def clamp_request_timeout(cls, v):
        return float(_clamp(v, 5.0, 600.0))


class DiscoveryConfig(BaseModel):
    """Model discovery and health check timers."""
    refresh_interval: float = Field(300.0, description="Seconds between full rediscovery passes")
    health_check_interval: float = Field(600.0, description="Seconds between health checks")

    @field_validator("refresh_interval", "health_check_interval")
    @classmethod
    def clamp_interval(cls, v):
        return float(_clamp(v, 30.0, 86400.0))


class ProviderConfig(BaseModel):
    """Chat model provider configuration."""
    provider_type: ProviderType = Field(ProviderType.OPENAI, description="Provider backend")
    api_key: Optional[str] = Field(None, description="API key for the provider")
    base_url: Optional[str] = Field(None, description="Base URL of an OpenAI-compatible endpoint")
    vendor: str = Field("openai", description="Vendor label attached to discovered models")
    expected_vendor: Optional[str] = Field(
        None, description="Vendor that must be reachable for the access check, any vendor when unset"
    )
    default_max_input_tokens: int = Field(
        128000, ge=1, description="Context size assumed when the provider does not report one"
    )


class ToolsConfig(BaseModel):
    """Tool sandbox configuration."""
    timeout: float = Field(30.0, description="Tool execution timeout in seconds")

    @field_validator("timeout")
    @classmethod
    def clamp_timeout(cls, v):
        return float(_clamp(v, 1.0, 300.0))


class AppConfig(BaseModel):
    """Main application configuration."""
    environment: Environment = Field(Environment.DEVELOPMENT, description="Application environment")
    debug: bool = Field(False, description="Enable debug mode")
    server: ServerConfig = Field(default_factory=ServerConfig, description="Server configuration")
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig, description="Discovery configuration")
    provider: ProviderConfig = Field(default_factory=ProviderConfig, description="Provider configuration")
    tools: ToolsConfig = Field(default_factory=ToolsConfig, description="Tool configuration")
