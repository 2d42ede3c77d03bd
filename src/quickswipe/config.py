"""Configuration settings for the review service and bot."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
WORDS_PATH = Path(os.getenv("WORDS_PATH", str(DATA_DIR / "words.json")))
SESSION_STATE_PATH = Path(os.getenv("SESSION_STATE_PATH", str(DATA_DIR / "quiz-store.json")))

# Scheduling constants
INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
KNOWN_QUALITY = 4  # "swiped/marked known"
UNKNOWN_QUALITY = 1  # "swiped/marked unknown"


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        SESSION_STATE_PATH.parent,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    words_path: Path = WORDS_PATH
    session_state_path: Path = SESSION_STATE_PATH


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///quickswipe.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


def get_admin_ids() -> list[int]:
    """Get admin IDs from environment variable."""
    return [int(id_) for id_ in os.getenv("TELEGRAM_ADMIN_IDS", "").split(",") if id_]


@dataclass
class BotSettings:
    """Bot configuration settings."""
    token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    default_user_token: Optional[str] = os.getenv("DEFAULT_USER_TOKEN") or None
    admin_ids: list[int] = field(default_factory=get_admin_ids)


@dataclass
class SchedulingSettings:
    """Spaced repetition settings."""
    initial_ease_factor: float = INITIAL_EASE_FACTOR
    min_ease_factor: float = MIN_EASE_FACTOR
    known_quality: int = KNOWN_QUALITY
    unknown_quality: int = UNKNOWN_QUALITY


@dataclass
class LinkCodeSettings:
    """Link code exchange settings."""
    ttl_seconds: int = int(os.getenv("LINK_CODE_TTL_SECONDS", "120"))
    code_length: int = int(os.getenv("LINK_CODE_LENGTH", "8"))  # hex characters
    sweep_interval_seconds: int = int(os.getenv("LINK_CODE_SWEEP_INTERVAL", "60"))


@dataclass
class MonitoringSettings:
    """Prometheus metrics settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_bot_settings() -> BotSettings:
    """Get bot settings."""
    return BotSettings()


def get_scheduling_settings() -> SchedulingSettings:
    """Get scheduling settings."""
    return SchedulingSettings()


def get_link_code_settings() -> LinkCodeSettings:
    """Get link code settings."""
    return LinkCodeSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    bot: BotSettings = field(default_factory=get_bot_settings)
    scheduling: SchedulingSettings = field(default_factory=get_scheduling_settings)
    link_codes: LinkCodeSettings = field(default_factory=get_link_code_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.link_codes.ttl_seconds <= 0:
            raise ValueError("LINK_CODE_TTL_SECONDS must be positive")

        if self.link_codes.sweep_interval_seconds <= 0:
            raise ValueError("LINK_CODE_SWEEP_INTERVAL must be positive")

        if self.link_codes.code_length <= 0 or self.link_codes.code_length % 2:
            raise ValueError("LINK_CODE_LENGTH must be a positive even number")

        if self.scheduling.min_ease_factor > self.scheduling.initial_ease_factor:
            raise ValueError("Minimum ease factor cannot be greater than the initial ease factor")

        if self.scheduling.known_quality < 3:
            raise ValueError("Known quality must be a passing grade (>= 3)")

        if self.scheduling.unknown_quality >= 3:
            raise ValueError("Unknown quality must be a lapse grade (< 3)")

    def require_bot_token(self) -> str:
        """Return the bot token or raise ValueError if it is not configured."""
        if not self.bot.token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")
        return self.bot.token


# Create global settings instance
settings = Settings()
settings.validate()
