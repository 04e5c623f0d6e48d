from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./app.db"

    # Deployment profile: "local" or "production" (picks default URLs)
    deployment: str = "local"
    frontend_url: str = ""
    backend_url: str = ""

    log_level: str = "INFO"

    # Identity provider (Clerk). Session tokens are RS256 JWTs verified with the instance PEM key.
    clerk_secret_key: str = ""
    clerk_jwt_key: str = ""
    clerk_issuer: str = ""  # empty = don't check iss
    clerk_api_url: str = "https://api.clerk.com/v1"

    # Only these email domains may use admin/write endpoints (empty = any domain)
    allowed_email_domains: list[str] = ["scaler.com", "sst.scaler.com"]

    # Category vocabulary accepted on create/update (lowercase)
    categories: list[str] = [
        "college", "tech", "tech-events", "tech-workshops", "academic", "sports", "emergency", "other",
    ]

    # Email notifications (Resend)
    resend_api_key: str = ""
    resend_from_email: str = "onboarding@resend.dev"
    resend_api_url: str = "https://api.resend.com/emails"
    # Fixed recipient list; empty = every registered user
    announcement_email_recipients: list[str] = []

    # Link shortener / click stats (Spoo.me)
    spoo_api_key: str = ""
    spoo_base_url: str = "https://spoo.me"

    # Outbound HTTP timeout for email/shortener/identity calls
    http_timeout_seconds: float = 10.0

    # Redis (optional rate-limit store; empty = in-memory per process)
    redis_url: str = ""

    # Rate limit presets: (window seconds, max requests) per client IP
    rate_limit_general_window_seconds: int = 15 * 60
    rate_limit_general_max: int = 100
    rate_limit_auth_window_seconds: int = 15 * 60
    rate_limit_auth_max: int = 25
    rate_limit_admin_window_seconds: int = 15 * 60
    rate_limit_admin_max: int = 200
    rate_limit_strict_window_seconds: int = 60 * 60
    rate_limit_strict_max: int = 3

    # Announcements one author may post per UTC day (super_admin exempt)
    admin_daily_post_limit: int = 20

    class Config:
        env_file = ".env"

    @property
    def resolved_frontend_url(self) -> str:
        if self.frontend_url:
            return self.frontend_url
        if self.deployment == "production":
            return "https://sst-announcement.vercel.app"
        return "http://localhost:3000"

    @property
    def resolved_backend_url(self) -> str:
        if self.backend_url:
            return self.backend_url
        if self.deployment == "production":
            return "https://sst-announcement.vercel.app"
        return "http://localhost:8000"


@lru_cache
def get_settings() -> Settings:
    return Settings()
