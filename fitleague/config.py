from pydantic import computed_field
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "FitLeague Core"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "fitleague"
    POSTGRES_PASSWORD: str = "fitleague"
    POSTGRES_DB: str = "fitleague"

    # Schedulers
    SCHEDULERS_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "America/Bogota"
    MISSION_CLOSE_HOUR: int = 0
    MISSION_CLOSE_MINUTE: int = 0
    OUTBOX_POLL_SECONDS: float = 5.0
    OUTBOX_BATCH_SIZE: int = 50
    OUTBOX_MAX_ATTEMPTS: int = 5

    # Game rules
    MIN_AVERAGE_HEART_RATE: float = 80.0
    LEAGUE_PROMOTION_COUNT: int = 3
    LEAGUE_RELEGATION_COUNT: int = 3

    # Notifications
    PUSH_ENABLED: bool = False
    PUSH_DRY_RUN: bool = True
    PUSH_PROVIDER: str = "mock"
    PUSH_API_URL: str | None = None
    PUSH_API_TOKEN: str | None = None
    PUSH_TIMEOUT_SECONDS: int = 10

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(MultiHostUrl.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        ))

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()
