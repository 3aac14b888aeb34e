"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Firestore (service account). Leave empty to run on the in-memory store.
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_CLIENT_EMAIL: str = ""
    FIREBASE_PRIVATE_KEY: str = ""
    FIRESTORE_DATABASE: str = "(default)"
    # Local emulator: only the project id is needed when this is set
    FIRESTORE_EMULATOR_HOST: str = ""

    # AI summaries (Hugging Face inference API)
    HUGGINGFACE_API_KEY: str = ""
    HUGGINGFACE_SUMMARY_MODEL: str = "facebook/bart-large-cnn"
    HUGGINGFACE_API_URL: str = "https://api-inference.huggingface.co/models"
    SUMMARY_TIMEOUT_SECONDS: float = 30.0
    SUMMARY_CACHE_TTL_SECONDS: int = 600

    # Session Token (issued by the auth provider, supports key rotation)
    JWT_SECRET: str = "change-this-session-secret-in-production"
    JWT_SECRET_PREVIOUS: str = ""
    JWT_EXPIRES_HOURS: int = 8

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_SUMMARY: int = 10
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    @property
    def firestore_private_key(self) -> str:
        """Private key with escaped newlines expanded (as stored in .env files)."""
        return self.FIREBASE_PRIVATE_KEY.replace("\\n", "\n")

    @property
    def firestore_missing_keys(self) -> list[str]:
        """Names of the Firestore settings that still need a value."""
        if self.FIRESTORE_EMULATOR_HOST:
            return [] if self.FIREBASE_PROJECT_ID else ["FIREBASE_PROJECT_ID"]
        required = {
            "FIREBASE_PROJECT_ID": self.FIREBASE_PROJECT_ID,
            "FIREBASE_CLIENT_EMAIL": self.FIREBASE_CLIENT_EMAIL,
            "FIREBASE_PRIVATE_KEY": self.FIREBASE_PRIVATE_KEY,
        }
        return [key for key, value in required.items() if not value.strip()]

    @property
    def firestore_configured(self) -> bool:
        return not self.firestore_missing_keys

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


settings = Settings()
