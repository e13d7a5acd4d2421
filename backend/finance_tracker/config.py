import logging
import os
from dataclasses import dataclass
from pathlib import Path

BCRYPT_ROUNDS = 10
RECENT_LIMIT = 5
DEFAULT_CURRENCY = "EUR"
DEFAULT_PROFILE_NAME = "User"
UNCATEGORIZED = "Uncategorized"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _default_data_dir() -> Path:
    return Path(os.getenv("FINANCE_TRACKER_DATA_DIR", "data")).expanduser()


@dataclass(frozen=True)
class Settings:
    data_dir: Path = _default_data_dir()
    db_filename: str = os.getenv("FINANCE_TRACKER_DB_FILENAME", "finance_tracker.db").strip() or "finance_tracker.db"
    db_path_override: str = os.getenv("FINANCE_TRACKER_DB_PATH", "").strip()
    export_dir_override: str = os.getenv("FINANCE_TRACKER_EXPORT_DIR", "").strip()
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    @property
    def database_path(self) -> Path:
        if self.db_path_override:
            return Path(self.db_path_override).expanduser()
        return self.data_dir / self.db_filename

    @property
    def export_dir(self) -> Path:
        if self.export_dir_override:
            return Path(self.export_dir_override).expanduser()
        return self.data_dir / "exports"


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level), logging.INFO),
        format=LOG_FORMAT,
    )
