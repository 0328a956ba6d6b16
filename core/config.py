from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # DATABASE_URL wins over the individual DB_* parts when set
    DATABASE_URL: str | None = None
    DB_USER: str = "scriptstudio"
    DB_PASSWORD: str = ""
    DB_HOST: str = "localhost"
    DB_PORT: str = "3306"
    DB_NAME: str = "scriptstudio"
    DB_TIMEOUT_SECONDS: float = 10.0
    DB_POOL_RECYCLE: int = 3600
    SQL_ECHO: bool = False

    LOCK_TIMEOUT_SECONDS: float = 5.0
    RETRY_ATTEMPTS: int = 3
    RETRY_BACKOFF_SECONDS: float = 0.05

    BCRYPT_ROUNDS: int = 12
    MIN_PASSWORD_LENGTH: int = 8

    SEARCH_TITLE_WEIGHT: float = 10.0
    SEARCH_TAG_WEIGHT: float = 6.0
    SEARCH_CONTENT_WEIGHT: float = 1.0

    LOG_LEVEL: str = "INFO"

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
