import os


def _flag(name, default="0"):
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _csv(name):
    return [p.strip().lower() for p in os.environ.get(name, "").split(",") if p.strip()]


class Settings:
    def __init__(self, **overrides):
        self.DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///local.db")
        self.DB_TIMEOUT_SECONDS = float(os.environ.get("DB_TIMEOUT_SECONDS", "10"))
        self.DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "20"))
        self.STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
        self.STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
        self.STRIPE_API_BASE = os.environ.get("STRIPE_API_BASE", "https://api.stripe.com")
        self.WEBHOOK_TOLERANCE_SECONDS = int(os.environ.get("WEBHOOK_TOLERANCE_SECONDS", "300"))
        self.RATELIMIT_ENABLED = _flag("RATELIMIT_ENABLED", "1")
        self.RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "100 per 15 minutes")
        self.LICENSE_RATE_LIMIT = os.environ.get("LICENSE_RATE_LIMIT", "10 per 15 minutes")
        self.ENABLE_DEV_ROUTES = _flag("ENABLE_DEV_ROUTES")
        self.GENERATE_ALLOWED_REFERRERS = _csv("GENERATE_ALLOWED_REFERRERS")
        self.MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(10 * 1024 * 1024)))
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
        for k, v in overrides.items():
            setattr(self, k, v)
        if self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

    @property
    def stripe_configured(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY) and "TEMPORARIA" not in self.STRIPE_SECRET_KEY


settings = Settings()
