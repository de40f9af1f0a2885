from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Storefront"
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    DATABASE_URL: str = "sqlite:///./storefront.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # --- Payment gateway ---
    # The secret is only used server-side for signatures and basic auth.
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    PAYMENT_CURRENCY: str = "INR"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # --- Auth ---
    AUTH_SECRET: str = "change-me"
    TOKEN_TTL_SECONDS: int = 30 * 24 * 60 * 60

    # --- Events (RabbitMQ) ---
    EVENTS_ENABLED: bool = False
    RABBITMQ_HOST: str = "rabbitmq"
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_CONNECT_RETRIES: int = 5
    RABBITMQ_RETRY_DELAY: float = 5.0
    # After a failed publish, events are dropped for this long before reconnecting.
    EVENTS_BACKOFF_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )


settings = Settings()
