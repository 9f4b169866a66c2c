"""
Configuration module for loading environment variables.
Backend URLs, polling behaviour and pricing settings come from the environment.
"""
import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Platform backend (accounts, deployments, inventory)
    PLATFORM_API_BASE_URL: str = os.getenv(
        "PLATFORM_API_BASE_URL",
        "http://localhost:3000"
    ).rstrip("/")
    PLATFORM_API_TIMEOUT: float = float(os.getenv("PLATFORM_API_TIMEOUT", "30"))

    # Server
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Session Configuration
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "super-secret-string")
    SESSION_MAX_AGE: int = 28800  # 8 hours

    # Pricing Configuration
    AWS_PRICING_REGION: str = os.getenv("AWS_PRICING_REGION", "us-east-1")
    PRICING_CACHE_TTL_SECONDS: int = int(os.getenv("PRICING_CACHE_TTL_SECONDS", "86400"))  # 24 hours
    HOURS_PER_MONTH: int = 730  # Standard assumption: 24/7 operation

    # Deployment polling
    DEPLOY_POLL_INTERVAL_SECONDS: float = float(os.getenv("DEPLOY_POLL_INTERVAL_SECONDS", "1.0"))
    DEPLOY_POLL_ERROR_BACKOFF_SECONDS: float = float(
        os.getenv("DEPLOY_POLL_ERROR_BACKOFF_SECONDS", "2.0")
    )
    # 0 disables the deadline
    DEPLOY_MAX_POLL_SECONDS: float = float(os.getenv("DEPLOY_MAX_POLL_SECONDS", "1800"))

    # Workflow snapshots
    SNAPSHOT_TTL_HOURS: int = int(os.getenv("SNAPSHOT_TTL_HOURS", "24"))
    # Workflow engines kept live in this process; idle ones beyond this are evicted
    MAX_LIVE_ENGINES: int = int(os.getenv("MAX_LIVE_ENGINES", "500"))

    # Gate module selection on declared module dependencies
    ENFORCE_MODULE_DEPENDENCIES: bool = _env_bool("ENFORCE_MODULE_DEPENDENCIES")

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are usable.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if not cls.PLATFORM_API_BASE_URL:
            raise ValueError("PLATFORM_API_BASE_URL is required")
        if not cls.PLATFORM_API_BASE_URL.startswith(("http://", "https://")):
            raise ValueError(
                f"PLATFORM_API_BASE_URL must be a valid URL (got: {cls.PLATFORM_API_BASE_URL})"
            )
        if cls.DEPLOY_POLL_INTERVAL_SECONDS <= 0:
            raise ValueError("DEPLOY_POLL_INTERVAL_SECONDS must be positive")
        if cls.DEPLOY_POLL_ERROR_BACKOFF_SECONDS <= 0:
            raise ValueError("DEPLOY_POLL_ERROR_BACKOFF_SECONDS must be positive")
        if cls.DEPLOY_MAX_POLL_SECONDS < 0:
            raise ValueError("DEPLOY_MAX_POLL_SECONDS must not be negative")
        if cls.MAX_LIVE_ENGINES <= 0:
            raise ValueError("MAX_LIVE_ENGINES must be positive")
        if not cls.SESSION_SECRET:
            raise ValueError("SESSION_SECRET is required")


config = Config()
