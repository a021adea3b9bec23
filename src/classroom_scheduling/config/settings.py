from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from classroom_scheduling.config.user_settings_store import DEFAULT_HOME_DIR, UserSettingsStore

BASE_DIR = Path(__file__).resolve().parents[3]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

APP_NAME = os.getenv("APP_NAME", "Classroom Scheduling")
APP_HOME_DIR = Path(os.getenv("CLASSROOM_SCHEDULING_HOME", str(DEFAULT_HOME_DIR))).expanduser()
user_settings_store = UserSettingsStore(home_dir=APP_HOME_DIR)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str = APP_NAME
    database_path: Path = Path(
        os.getenv("DATABASE_PATH", str(APP_HOME_DIR / "scheduling.db"))
    )
    scheduling_timezone: str = os.getenv(
        "SCHEDULING_TIMEZONE", user_settings_store.get("scheduling_timezone", "UTC")
    )
    attendance_present_ratio: float = float(
        os.getenv("ATTENDANCE_PRESENT_RATIO", user_settings_store.get("attendance_present_ratio", 0.5))
    )
    attendance_partial_ratio: float = float(
        os.getenv("ATTENDANCE_PARTIAL_RATIO", user_settings_store.get("attendance_partial_ratio", 0.10))
    )
    attendance_partial_min_seconds: int = int(
        os.getenv("ATTENDANCE_PARTIAL_MIN_SECONDS", user_settings_store.get("attendance_partial_min_seconds", 120))
    )
    join_early_minutes: int = int(
        os.getenv("JOIN_EARLY_MINUTES", user_settings_store.get("join_early_minutes", 10))
    )
    join_late_minutes: int = int(
        os.getenv("JOIN_LATE_MINUTES", user_settings_store.get("join_late_minutes", 5))
    )
    recurrence_default_occurrences: int = int(
        os.getenv("RECURRENCE_DEFAULT_OCCURRENCES", user_settings_store.get("recurrence_default_occurrences", 52))
    )
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _env_bool("LOG_JSON", False)

    def describe(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"database_path={self.database_path}, "
            f"scheduling_timezone={self.scheduling_timezone}, "
            f"attendance_present_ratio={self.attendance_present_ratio}, "
            f"attendance_partial_ratio={self.attendance_partial_ratio}, "
            f"attendance_partial_min_seconds={self.attendance_partial_min_seconds}, "
            f"join_early_minutes={self.join_early_minutes}, "
            f"join_late_minutes={self.join_late_minutes}, "
            f"recurrence_default_occurrences={self.recurrence_default_occurrences})"
        )


settings = Settings()


def refresh_settings_from_store() -> Settings:
    """Rebuild the settings object from the current user store values."""

    global settings  # noqa: PLW0603 - module-level singleton

    user_settings_store.reload()

    settings = Settings(
        app_name=APP_NAME,
        database_path=Path(os.getenv("DATABASE_PATH", str(APP_HOME_DIR / "scheduling.db"))),
        scheduling_timezone=os.getenv(
            "SCHEDULING_TIMEZONE", user_settings_store.get("scheduling_timezone", "UTC")
        ),
        attendance_present_ratio=float(
            os.getenv("ATTENDANCE_PRESENT_RATIO", user_settings_store.get("attendance_present_ratio", 0.5))
        ),
        attendance_partial_ratio=float(
            os.getenv("ATTENDANCE_PARTIAL_RATIO", user_settings_store.get("attendance_partial_ratio", 0.10))
        ),
        attendance_partial_min_seconds=int(
            os.getenv(
                "ATTENDANCE_PARTIAL_MIN_SECONDS", user_settings_store.get("attendance_partial_min_seconds", 120)
            )
        ),
        join_early_minutes=int(os.getenv("JOIN_EARLY_MINUTES", user_settings_store.get("join_early_minutes", 10))),
        join_late_minutes=int(os.getenv("JOIN_LATE_MINUTES", user_settings_store.get("join_late_minutes", 5))),
        recurrence_default_occurrences=int(
            os.getenv(
                "RECURRENCE_DEFAULT_OCCURRENCES", user_settings_store.get("recurrence_default_occurrences", 52)
            )
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON", False),
    )
    return settings
