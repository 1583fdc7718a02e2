"""
config.py
Runtime settings (environment variables, optionally from a local .env file) and logging setup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    db_file: Path = BASE_DIR / "checkin.db"
    portrait_dir: Path = BASE_DIR / "portraits"
    member_backend: str = "sqlite"  # 'sqlite' or 'supabase'
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_bucket: str = "portraits"
    camera_index: int = 0
    verify_delay: float = 1.5
    auto_scan_interval: float = 5.0
    log_level: str = "INFO"


def load_settings(env_file: str | os.PathLike | None = None) -> Settings:
    """
    Build Settings from the environment. Values in a .env file only fill
    variables that are not already set.
    """
    load_dotenv(env_file)
    defaults = Settings()

    supabase_url = os.getenv("SUPABASE_URL", "")
    backend = os.getenv("MEMBER_BACKEND") or ("supabase" if supabase_url else defaults.member_backend)

    return Settings(
        db_file=Path(os.getenv("CHECKIN_DB_FILE", str(defaults.db_file))),
        portrait_dir=Path(os.getenv("CHECKIN_PORTRAIT_DIR", str(defaults.portrait_dir))),
        member_backend=backend.strip().lower(),
        supabase_url=supabase_url,
        supabase_key=os.getenv("SUPABASE_KEY", ""),
        supabase_bucket=os.getenv("SUPABASE_BUCKET", defaults.supabase_bucket),
        camera_index=int(os.getenv("CAMERA_INDEX", str(defaults.camera_index))),
        verify_delay=float(os.getenv("SCAN_VERIFY_DELAY", str(defaults.verify_delay))),
        auto_scan_interval=float(os.getenv("AUTO_SCAN_INTERVAL", str(defaults.auto_scan_interval))),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
