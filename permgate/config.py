"""Configuration settings for permgate"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" or "json"

    # Database
    DATABASE_URL: str = "sqlite:///./permgate.db"
    DATABASE_ECHO: bool = False

    # Permission templates
    # Id of the template applied to new projects when none is given.
    # May name a template that no longer exists; that means "no template".
    DEFAULT_PERMISSION_TEMPLATE: str = ""

    @property
    def database_url(self) -> str:
        """Database URL with the legacy postgres:// scheme normalized"""
        # Some providers use postgres:// but SQLAlchemy requires postgresql://
        if self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self.DATABASE_URL

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
