"""
Settings and configuration management for the MyGo supplier client.

Provides environment-based configuration management using Pydantic settings
for supplier credentials, the API endpoint, and resilience tuning.
"""

from pydantic import ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings

from mygo_mcp.models.search import Credential


class Settings(BaseSettings):
    """
    Configuration settings for the MyGo MCP server.

    Uses environment variables with MYGO_ prefix for configuration.
    """

    # Supplier credentials
    login: str = Field("", description="MyGo API login")
    password: SecretStr = Field(SecretStr(""), description="MyGo API password")

    # API Configuration
    base_url: str = Field(
        "https://admin.mygo.co/api/hotel", description="Base URL for MyGo hotel API"
    )
    environment: str = Field(
        "production",
        description="Deployment environment (production/staging/development)",
    )

    # Client Configuration
    request_timeout: float = Field(
        30.0, description="Wall-clock timeout per attempt in seconds", ge=1, le=300
    )
    max_attempts: int = Field(
        3, description="Maximum attempts per idempotent call", ge=1, le=10
    )
    retry_backoff: float = Field(
        1.0, description="Base retry backoff time in seconds", ge=0.0, le=60.0
    )
    retry_backoff_max: float = Field(
        5.0, description="Upper bound for a single backoff in seconds", ge=0.0, le=60.0
    )
    retryable_status_codes: list[int] = Field(
        default_factory=lambda: [429, 502, 503, 504],
        description="Response statuses that trigger a retry",
    )
    error_preview_chars: int = Field(
        400, description="Maximum error body characters written to logs", ge=0
    )

    # Caching Configuration
    enable_cache: bool = Field(True, description="Enable response caching")
    cache_ttl: int = Field(
        300, description="Search cache time-to-live in seconds", ge=0, le=3600
    )
    cities_cache_ttl: int = Field(
        600, description="City list time-to-live in seconds", ge=0, le=86400
    )
    cache_max_memory: int = Field(
        10000,
        description="Maximum number of entries in memory cache",
        ge=100,
        le=100000,
    )

    # Logging Configuration
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Logging format string",
    )
    enable_structured_logging: bool = Field(
        True, description="Enable structured logging with JSON format"
    )

    model_config = ConfigDict(
        env_file=".env", env_prefix="MYGO_", case_sensitive=False, extra="ignore"
    )

    def get_credential(self) -> Credential:
        """
        Build the supplier credential from configured values.

        Surrounding whitespace is dropped; secrets pasted into deployment
        consoles often carry a trailing newline.
        """
        return Credential(
            login=self.login.strip(),
            password=SecretStr(self.password.get_secret_value().strip()),
        )

    def validate_required_settings(self) -> list[str]:
        """
        Validate that all required settings are present.

        Returns:
            List of missing settings (empty if all present)
        """
        missing = []

        if not self.login.strip():
            missing.append("MYGO_LOGIN")

        if not self.password.get_secret_value().strip():
            missing.append("MYGO_PASSWORD")

        if not self.base_url:
            missing.append("MYGO_BASE_URL")

        return missing


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
