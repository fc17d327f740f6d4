import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("SCHOOL_DATABASE_URL", "")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_secret: str = os.getenv("ACCESS_TOKEN_SECRET", "change-me-access-secret")
    access_token_exp_minutes: int = int(os.getenv("ACCESS_TOKEN_EXP_MINUTES", "60"))
    refresh_token_secret: str = os.getenv("REFRESH_TOKEN_SECRET", "change-me-refresh-secret")
    refresh_token_exp_minutes: int = int(os.getenv("REFRESH_TOKEN_EXP_MINUTES", str(60 * 24 * 10)))
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    stripe_api_base: str = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
    payment_currency: str = os.getenv("PAYMENT_CURRENCY", "pkr")
    webhook_tolerance_seconds: int = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))
    cors_origin_local: str = os.getenv("CORS_ORIGIN_LOCAL", "http://localhost:5173")
    cors_origin_prod: str = os.getenv("CORS_ORIGIN_PROD", "")
    production: bool = os.getenv("NODE_ENV", os.getenv("APP_ENV", "development")).lower() in {"production", "test"}

    @property
    def frontend_origin(self) -> str:
        # Checkout redirects go to whichever frontend this deployment serves.
        if self.production and self.cors_origin_prod:
            return self.cors_origin_prod
        return self.cors_origin_local


settings = Settings()
