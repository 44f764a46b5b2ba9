from typing import Dict, List, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # JWT
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # App Configuration
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Sitecraft Backend"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Cache / Redis
    REDIS_URL: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None
    CACHE_TTL_SECONDS: int = 300

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    # Used instead of STRIPE_WEBHOOK_SECRET when ENVIRONMENT=production
    STRIPE_WEBHOOK_SECRET_LIVE: Optional[str] = None

    # Features unlocked by each plan tier. The tier comes from the
    # subscription metadata key "planTier".
    PLAN_FEATURES: Dict[str, List[str]] = {
        "basic": ["publish", "custom_domain", "ssl", "support"],
        "pro": ["publish", "custom_domain", "ssl", "support", "analytics", "advanced_customization"],
        "enterprise": [
            "publish",
            "custom_domain",
            "ssl",
            "support",
            "analytics",
            "advanced_customization",
            "api_access",
        ],
    }

    # Custom domains
    # Customers point a CNAME at <slug>.<PLATFORM_DOMAIN>
    PLATFORM_DOMAIN: str = "sites.sitecraft.app"
    # DNS-over-HTTPS JSON endpoint (Google / Cloudflare compatible)
    DNS_RESOLVER_URL: str = "https://dns.google/resolve"
    DNS_TIMEOUT_SECONDS: int = 5

    # Frontend
    FRONTEND_URL: str = "http://localhost:5173"
    FRONTEND_URL_LIVE: Optional[str] = None

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8080",
    ]

    @model_validator(mode='after')
    def assemble_redis_url(self) -> 'Settings':
        if self.REDIS_PASSWORD and self.REDIS_URL:
            # URL already carries credentials
            if "@" in self.REDIS_URL:
                return self

            import urllib.parse
            if "redis://" in self.REDIS_URL:
                encoded_pwd = urllib.parse.quote_plus(self.REDIS_PASSWORD)
                self.REDIS_URL = self.REDIS_URL.replace("redis://", f"redis://:{encoded_pwd}@", 1)
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def stripe_webhook_secret(self) -> Optional[str]:
        """Secret used to verify Stripe-Signature for the current environment."""
        if self.is_production:
            return self.STRIPE_WEBHOOK_SECRET_LIVE or self.STRIPE_WEBHOOK_SECRET
        return self.STRIPE_WEBHOOK_SECRET

    @property
    def frontend_url(self) -> str:
        if self.is_production and self.FRONTEND_URL_LIVE:
            return self.FRONTEND_URL_LIVE
        return self.FRONTEND_URL

    def get_plan_features(self, tier: str) -> List[str]:
        """Features for a plan tier; unknown tiers fall back to basic."""
        return self.PLAN_FEATURES.get(tier) or self.PLAN_FEATURES["basic"]

    def get_cors_origins(self) -> list[str]:
        origins = self.CORS_ORIGINS.copy()
        if self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
