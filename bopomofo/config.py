"""Application configuration settings.

This module provides centralized configuration management for the Bopomofo
Mastery service. All settings can be overridden via environment variables.

Environment Variables:
    DATABASE_URL: SQLAlchemy database connection URL for the device state store
        Default: sqlite:///data/bopomofo.db

    COOKIE_SECURE: Whether to require HTTPS for the device cookie
        Default: false
        Note: Must be 'true' (case-insensitive) to enable

    COOKIE_MAX_AGE: Device cookie duration in seconds
        Default: 31536000 (1 year)

    ENVIRONMENT: Deployment environment name
        Default: development
        Options: development, staging, production
        Affects: logging format, session middleware

    LOG_LEVEL: Logging verbosity level
        Default: INFO (production), DEBUG (development)

    SECRET_KEY: Secret key for session middleware in production
        Default: dev-secret-key-change-in-production

    RESULT_ENDPOINT: URL that receives checkpoint results on full clearance
        Default: "" (delivery is skipped and reported as such)

    GLYPH_FONT_PATH: TrueType/OpenType font used to render reference glyphs
        Default: "" (probe common CJK font locations, then Pillow's default)

    RATE_LIMIT_ENABLED: Whether slowapi limits are enforced
        Default: true

    RATE_LIMIT_DEFAULT: Default per-IP request limit
        Default: 100/minute

Usage:
    >>> from bopomofo.config import settings
    >>> if not settings.RESULT_ENDPOINT:
    ...     print("Results stay on this device")
"""
import os


class Settings:
    """Application settings loaded from environment variables.

    All attributes can be overridden by setting the corresponding environment
    variable. Boolean values are case-insensitive ('true', 'True', 'TRUE' all work).
    """

    # Cookie security settings
    COOKIE_SECURE: bool = os.getenv("COOKIE_SECURE", "false").lower() == "true"
    """Require HTTPS for the device cookie."""

    COOKIE_HTTPONLY: bool = True
    """Prevent JavaScript access to the device cookie."""

    COOKIE_SAMESITE: str = "lax"
    """Cookie SameSite policy. Options: strict, lax, none."""

    COOKIE_MAX_AGE: int = int(os.getenv("COOKIE_MAX_AGE", str(365 * 24 * 60 * 60)))
    """Device cookie lifetime in seconds. Default: 1 year."""

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///data/bopomofo.db")
    """SQLAlchemy database connection URL for persisted device state."""

    # Application settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    """Deployment environment: development, staging, or production."""

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "")
    """Logging level. Empty string means auto-detect based on ENVIRONMENT."""

    # Security settings
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    """Secret key for session middleware. MUST change in production."""

    # Result delivery
    RESULT_ENDPOINT: str = os.getenv("RESULT_ENDPOINT", "")
    """Result collection URL. Empty means delivery is skipped."""

    # Grading
    GLYPH_FONT_PATH: str = os.getenv("GLYPH_FONT_PATH", "")
    """Font file for reference glyph rendering. Empty means probe system fonts."""

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    """Enforce slowapi request limits."""

    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")
    """Default request limit per client IP."""

    @property
    def is_production(self) -> bool:
        """Check if running in production environment.

        Returns:
            True if ENVIRONMENT is 'production' (case-insensitive)
        """
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment.

        Returns:
            True if ENVIRONMENT is 'development' (case-insensitive)
        """
        return self.ENVIRONMENT.lower() == "development"


settings = Settings()
"""Global settings instance. Import and use throughout the application."""
