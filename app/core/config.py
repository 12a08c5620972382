from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "Mock Test Backend"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: str = "5432"
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = "postgres"
    DATABASE_NAME: str = "mocktest"
    DATABASE_URL_OVERRIDE: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    DATABASE_URL: str = ""

    def __init__(self, **data):
        super().__init__(**data)
        self.DATABASE_URL = self.DATABASE_URL_OVERRIDE or (
            f'postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}'
            f'@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}'
        )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Exam engine
    MAX_VIOLATIONS: int = 5
    SESSION_IDLE_MINUTES: int = 5
    EXPIRY_SWEEP_SECONDS: int = 60
    RESULT_RETENTION_DAYS: int = 120
    DEFAULT_PASSING_PERCENTAGE: float = 60

    class Config:
        env_file = ".env"

settings = Settings()
