import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = field(default_factory=lambda: _env("API_HOST", "127.0.0.1"))
    api_port: int = field(default_factory=lambda: _env_int("API_PORT", 8080))

    # Data store settings
    datastore: str = field(default_factory=lambda: _env("DATASTORE", "sqlite").lower())
    database_file: str = field(default_factory=lambda: _env("LIBRARY_DB_FILE", "library.db"))

    # Pagination settings
    default_limit: int = field(default_factory=lambda: _env_int("DEFAULT_LIMIT", 20))
    default_offset: int = field(default_factory=lambda: _env_int("DEFAULT_OFFSET", 0))
    default_maximum_limit: int = field(default_factory=lambda: _env_int("DEFAULT_MAXIMUM_LIMIT", 1000))

    # Application settings
    app_name: str = field(default_factory=lambda: _env("APP_NAME", "Lending Library API"))
    app_version: str = field(default_factory=lambda: _env("APP_VERSION", "1.0.0"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG"))


def configure_logging(cfg: "Settings") -> None:
    """Configure the root logger once for the API and the CLI."""
    level = logging.DEBUG if cfg.debug else getattr(logging, cfg.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
