import socket

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "local"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    operator_username: str = "admin"
    operator_password: str = "admin"

    database_url: str = "sqlite:///./migrator.db"
    migrations_path: str = "./migrations"
    migration_suffix: str = ".up.sql"
    service_id: str = Field(default_factory=socket.gethostname)
    run_migrations_on_startup: bool = True
    fail_open_applied_check: bool = False


settings = Settings()
