from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Guard settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - surfaces raw upstream messages in error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Generic API call limiter (larger budget, shorter memory)
    api_rate_limit_max_attempts: int = 100
    api_rate_limit_window_seconds: float = 60.0

    # Authentication limiter (smaller budget, longer memory)
    auth_rate_limit_max_attempts: int = 5
    auth_rate_limit_window_seconds: float = 300.0

    rate_limit_backend: str = "memory"  # memory | redis
    rate_limit_fail_closed: bool = (
        True  # If True, deny attempts when Redis is unavailable
    )
    rate_limit_key_prefix: str = "fleetguard:ratelimit"
    rate_limit_max_keys: int = 10000  # in-memory backend, LRU beyond this

    # Redis settings (optional)
    redis_url: str = "redis://localhost:6379/0"

    # Session monitor settings
    session_check_interval_seconds: float = 60.0
    session_staleness_hours: float = 24.0
    activity_store_backend: str = "memory"  # memory | redis

    # Password policy
    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True
    password_special_characters: str = '!@#$%^&*(),.?":{}|<>'
    login_password_min_length: int = 6

    # Registration name bounds
    name_min_length: int = 2
    name_max_length: int = 50

    # Audit sink settings
    audit_sink: str = "log"  # log | http | database
    audit_endpoint_url: str = ""
    audit_api_key: str = ""
    audit_timeout_seconds: float = 10.0
    audit_database_url: str = ""  # e.g. sqlite+aiosqlite:///audit.db

    client_agent: str = "fleetguard/0.1.0"

    @field_validator(
        "api_rate_limit_max_attempts",
        "auth_rate_limit_max_attempts",
        "rate_limit_max_keys",
        "password_min_length",
        "login_password_min_length",
        "name_min_length",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate counters and lengths are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator(
        "api_rate_limit_window_seconds",
        "auth_rate_limit_window_seconds",
        "session_check_interval_seconds",
        "session_staleness_hours",
        "audit_timeout_seconds",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @field_validator("rate_limit_backend", "activity_store_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("memory", "redis"):
            raise ValueError("backend must be 'memory' or 'redis'")
        return v

    @field_validator("audit_sink")
    @classmethod
    def validate_audit_sink(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("log", "http", "database"):
            raise ValueError("audit_sink must be one of: log, http, database")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
