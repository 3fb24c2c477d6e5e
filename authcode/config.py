from pydantic_settings import BaseSettings
from pydantic import Field
import logging

logger = logging.getLogger(__name__)

DEFAULT_SECRET_KEY = "change-me"


class Settings(BaseSettings):
    # === DATABASE ===
    DATABASE_URL: str = Field(default="sqlite:///./authcode.db", description="SQLAlchemy database URL")

    # === SECURITY ===
    SECRET_KEY: str = Field(default=DEFAULT_SECRET_KEY, description="Pepper used when hashing verification codes")

    # === VERIFICATION CODES ===
    CODE_TTL_MINUTES: int = Field(default=15, description="Lifetime of an issued verification code")
    MAX_ATTEMPTS: int = Field(default=5, description="Failed submissions before a code is invalidated")
    RESEND_COOLDOWN_SECONDS: int = Field(default=30, description="Minimum gap between resend requests in a flow")
    FLOW_TTL_MINUTES: int = Field(default=30, description="Lifetime of a flow session")
    STORE_LOCK_TIMEOUT_SECONDS: float = Field(default=5.0, description="Max wait for a per-key store lock")

    # === EMAIL ===
    EMAIL_HOST: str = Field(default="", description="SMTP host")
    EMAIL_PORT: int = Field(default=587, description="SMTP port")
    EMAIL_HOST_USER: str = Field(default="", description="SMTP username")
    EMAIL_HOST_PASSWORD: str = Field(default="", description="SMTP password")
    EMAIL_FROM: str = Field(default="no-reply@example.com", description="Email sender address")
    EMAIL_FROM_NAME: str = Field(default="Plamento", description="Display name for outgoing mail")
    EMAIL_USE_SSL: bool = Field(default=False, description="Use implicit SSL (465) instead of STARTTLS")

    # === APP ===
    SITE_NAME: str = Field(default="Plamento", description="Product name used in emails")
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma separated list of allowed origins",
    )

    # === DEBUG MODE ===
    DEBUG: bool = Field(default=False, description="Debug mode")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


def check_secret_key(config: Settings) -> None:
    """Refuse the built-in SECRET_KEY outside debug mode; it is only a warning in DEBUG."""
    if config.SECRET_KEY != DEFAULT_SECRET_KEY:
        return
    if not config.DEBUG:
        raise RuntimeError("SECRET_KEY is not set. Configure it before starting the server.")
    logger.warning("⚠️ SECRET_KEY is the built-in default; verification codes use a known pepper")


# Create settings instance
settings = Settings()
