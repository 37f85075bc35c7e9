"""Configuration settings for the Perplexity client."""

import os
from typing import Dict

from dotenv import load_dotenv

from perplexity_client.exceptions import ConfigurationError
from perplexity_client.utils.cookies import parse_cookie_env
from perplexity_client.utils.logger import logger

# Load environment variables from .env file
load_dotenv()
logger.debug("Environment variables loaded from .env file")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Client settings loaded from environment variables."""

    # Perplexity endpoints
    PERPLEXITY_BASE_URL: str = os.getenv("PERPLEXITY_BASE_URL", "https://www.perplexity.ai")
    PERPLEXITY_COOKIE: str = os.getenv("PERPLEXITY_COOKIE", "")
    API_VERSION: str = os.getenv("API_VERSION", "2.18")
    DEFAULT_LANGUAGE: str = os.getenv("DEFAULT_LANGUAGE", "en-US")
    USER_AGENT: str = os.getenv("USER_AGENT", "python-perplexity-client/0.1")

    # Temporary mailbox provider
    EMAILNATOR_BASE_URL: str = os.getenv("EMAILNATOR_BASE_URL", "https://www.emailnator.com")
    EMAILNATOR_COOKIE: str = os.getenv("EMAILNATOR_COOKIE", "")

    # HTTP timeouts (seconds). The SSE read loop itself has no read timeout.
    HTTP_CONNECT_TIMEOUT: float = float(os.getenv("HTTP_CONNECT_TIMEOUT", "10"))
    HTTP_WRITE_TIMEOUT: float = float(os.getenv("HTTP_WRITE_TIMEOUT", "30"))

    # Account creation
    MAILBOX_TIMEOUT: float = float(os.getenv("MAILBOX_TIMEOUT", "60"))
    MAILBOX_POLL_INTERVAL: float = float(os.getenv("MAILBOX_POLL_INTERVAL", "5"))
    SIGNIN_MAX_ATTEMPTS: int = int(os.getenv("SIGNIN_MAX_ATTEMPTS", "6"))
    SIGNIN_BACKOFF_SECONDS: float = float(os.getenv("SIGNIN_BACKOFF_SECONDS", "1"))
    SIGNIN_RATE_LIMIT_BACKOFF_SECONDS: float = float(
        os.getenv("SIGNIN_RATE_LIMIT_BACKOFF_SECONDS", "60")
    )
    INTERACTIVE_LOGIN_TIMEOUT: float = float(os.getenv("INTERACTIVE_LOGIN_TIMEOUT", "180"))

    # Starting allowance of a freshly created account
    NEW_ACCOUNT_PREMIUM_QUOTA: int = int(os.getenv("NEW_ACCOUNT_PREMIUM_QUOTA", "5"))
    NEW_ACCOUNT_UPLOAD_QUOTA: int = int(os.getenv("NEW_ACCOUNT_UPLOAD_QUOTA", "10"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    ENABLE_CORRELATION_IDS: bool = _env_bool("ENABLE_CORRELATION_IDS", "true")

    @classmethod
    def perplexity_cookies(cls) -> Dict[str, str]:
        """Parse PERPLEXITY_COOKIE into a cookie mapping."""
        return parse_cookie_env(cls.PERPLEXITY_COOKIE)

    @classmethod
    def emailnator_cookies(cls) -> Dict[str, str]:
        """Parse EMAILNATOR_COOKIE into a cookie mapping."""
        return parse_cookie_env(cls.EMAILNATOR_COOKIE)

    @classmethod
    def validate(cls) -> None:
        """Validate that settings hold usable values."""
        logger.debug("Validating configuration settings")

        if not cls.PERPLEXITY_BASE_URL.startswith(("http://", "https://")):
            logger.error(f"PERPLEXITY_BASE_URL is not an http(s) URL: {cls.PERPLEXITY_BASE_URL}")
            raise ConfigurationError(
                "PERPLEXITY_BASE_URL must be an http(s) URL, "
                "e.g. https://www.perplexity.ai"
            )
        if cls.SIGNIN_MAX_ATTEMPTS < 1:
            logger.error(f"SIGNIN_MAX_ATTEMPTS is {cls.SIGNIN_MAX_ATTEMPTS}")
            raise ConfigurationError("SIGNIN_MAX_ATTEMPTS must be at least 1.")
        if cls.MAILBOX_POLL_INTERVAL <= 0 or cls.MAILBOX_TIMEOUT <= 0:
            logger.error(
                f"Invalid mailbox timing: timeout={cls.MAILBOX_TIMEOUT}, "
                f"poll_interval={cls.MAILBOX_POLL_INTERVAL}"
            )
            raise ConfigurationError(
                "MAILBOX_TIMEOUT and MAILBOX_POLL_INTERVAL must be positive."
            )

        logger.info("Configuration validation successful")
        logger.debug(
            f"Configuration: base_url={cls.PERPLEXITY_BASE_URL}, "
            f"api_version={cls.API_VERSION}, "
            f"authenticated={bool(cls.PERPLEXITY_COOKIE)}"
        )


# Global settings instance
settings = Settings()
