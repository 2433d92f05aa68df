"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./quickdesk.db"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 12

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (links in invitation / notification emails)
    FRONTEND_URL: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_AUTH: int = 5  # Login attempts
    RATE_LIMIT_API: int = 60  # General API

    # Login lockout
    LOGIN_MAX_ATTEMPTS: int = 3
    LOGIN_LOCKOUT_SECONDS: int = 60

    # Billing
    PRICE_PER_AGENT: float = 500.00
    BILLING_CURRENCY: str = "PHP"
    TRIAL_DAYS: int = 14

    # PayMongo
    PAYMONGO_API_URL: str = "https://api.paymongo.com/v1"
    PAYMONGO_SECRET_KEY: str = ""
    PAYMONGO_WEBHOOK_SECRET: str = ""
    PAYMONGO_TIMEOUT_SECONDS: float = 15.0

    # Microsoft Graph (fallback when an organization has no mail settings)
    GRAPH_TENANT_ID: str = ""
    GRAPH_CLIENT_ID: str = ""
    GRAPH_CLIENT_SECRET: str = ""
    GRAPH_MAILBOX: str = ""
    GRAPH_TIMEOUT_SECONDS: float = 20.0

    # Ticket read cache (bounded, invalidated on write)
    TICKET_CACHE_MAX_ENTRIES: int = 1024
    TICKET_CACHE_TTL_SECONDS: int = 60

    # Client polling policy advertised to the inbox UI
    POLL_ACTIVE_SECONDS: int = 15
    POLL_IDLE_SECONDS: int = 120
    POLL_IDLE_THRESHOLD_SECONDS: int = 300

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"

    @property
    def paymongo_enabled(self) -> bool:
        return bool(self.PAYMONGO_SECRET_KEY)

    @property
    def graph_enabled(self) -> bool:
        return bool(
            self.GRAPH_TENANT_ID
            and self.GRAPH_CLIENT_ID
            and self.GRAPH_CLIENT_SECRET
            and self.GRAPH_MAILBOX
        )


settings = Settings()
