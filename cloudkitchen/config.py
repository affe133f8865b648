from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    JWT_ISS: str = "cloudkitchen"
    JWT_EXP_MIN: int = 12*60
    TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"

    # pricing
    GST_PERCENTAGE: float = 5.0
    CURRENCY: str = "INR"
    CURRENCY_SYMBOL: str = "Rs."

    # delivery
    FREE_DELIVERY_THRESHOLD: float = 300
    DELIVERY_BASE_CHARGE: float = 30
    PEAK_HOUR_SURCHARGE: float = 10
    PEAK_HOURS: list[tuple[int, int]] = [(12, 14), (19, 22)]  # [start, end) local hours

    # order / invoice numbering: "counter" (atomic row per year) or "scan" (max-scan + unique index)
    SEQUENCE_STRATEGY: str = "counter"
    SEQUENCE_MAX_ATTEMPTS: int = 3

    STRICT_STATUS_TRANSITIONS: bool = False

    # side effects
    EVENTS_WEBHOOK_URL: str | None = None
    EXTERNAL_TIMEOUT_S: float = 3.0
    ADMIN_PHONE: str = "+919876543210"
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None
    TWILIO_WHATSAPP_NUMBER: str | None = None
    PAYMENT_RECONCILE_AFTER_S: int = 60

    # invoice branding
    COMPANY_NAME: str = "FreshEats"
    COMPANY_TAGLINE: str = "Fresh & Delicious Food Delivery"
    COMPANY_ADDRESS: str = "Your City, India"
    COMPANY_PHONE: str = "+91 XXXXXXXXXX"
    COMPANY_GSTIN: str = "00XXXXX0000X0XX"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
