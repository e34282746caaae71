from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    DEBUG: bool = True
    CORS_ORIGINS: list[str] = ["*"]

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "parcelDB"
    # Transactions multi-documents : nécessite un replica set (Atlas, rs local)
    MONGO_TRANSACTIONS: bool = False

    # Identité : "firebase" (ID tokens) ou "jwt" (jetons signés par un émetteur tiers)
    AUTH_PROVIDER: str = "firebase"
    FIREBASE_CREDENTIALS_PATH: Optional[str] = "firebase-service-account.json"
    FIREBASE_PROJECT_ID: Optional[str] = None
    JWT_SECRET: str = "changeme_minimum_32_chars_here_please"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    JWT_ISSUER: Optional[str] = None

    # Stripe (Payment Intents)
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    PAYMENT_CURRENCY: str = "usd"
    PAYMENT_TIMEOUT_SECONDS: float = 15.0

    # Rémunération livreur : part du coût de livraison
    RIDER_SAME_DISTRICT_RATE:  float = 0.80
    RIDER_CROSS_DISTRICT_RATE: float = 0.30

    # Suivi public
    TRACKING_RATE_LIMIT: str = "60/minute"

    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"],  # cherche dans backend/ puis dans la racine
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
