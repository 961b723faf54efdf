from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings


class DatabaseSettings(BaseSettings):
    # -------------------------
    # PostgreSQL
    # -------------------------
    PGSQL_DB_HOST: str = Field(default="localhost")
    PGSQL_DB_PORT: int = Field(default=5432)
    PGSQL_DB_NAME: str = Field(default="growth")
    PGSQL_DB_USER: str = Field(default="postgres")
    PGSQL_DB_PASSWORD: str = Field(default="")

    # Full SQLAlchemy URL; takes precedence over the PGSQL_* fields.
    # Useful for SQLite in local dev and tests.
    GROWTH_DATABASE_URL: Optional[str] = Field(default=None)

    class Config:
        # Priority: OS environment > .env file > defaults
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def pg_dsn(self) -> str:
        """
        Constructs a safe PostgreSQL connection string (DSN).
        Handles special characters in the password and includes the port.
        """
        encoded_password = quote_plus(self.PGSQL_DB_PASSWORD)
        return (
            f"postgresql://{self.PGSQL_DB_USER}:{encoded_password}@"
            f"{self.PGSQL_DB_HOST}:{self.PGSQL_DB_PORT}/"
            f"{self.PGSQL_DB_NAME}"
        )

    @property
    def database_url(self) -> str:
        return self.GROWTH_DATABASE_URL or self.pg_dsn
