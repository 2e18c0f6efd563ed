"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""

    project_id: str
    timezone: str = "Asia/Tokyo"
    collection: str = "reminders"
    max_monitored_regions: int = 20
    max_region_radius_meters: float = 5000.0
    store_retry_attempts: int = 3
    store_retry_base_delay: float = 0.5

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        project_id = os.getenv("PROJECT_ID")
        if not project_id:
            raise ValueError("PROJECT_ID is not set in environment")

        return cls(
            project_id=project_id,
            timezone=os.getenv("REMINDER_TIMEZONE", "Asia/Tokyo"),
            collection=os.getenv("REMINDER_COLLECTION", "reminders"),
            max_monitored_regions=_env_int("MAX_MONITORED_REGIONS", 20),
            max_region_radius_meters=_env_float("MAX_REGION_RADIUS_METERS", 5000.0),
            store_retry_attempts=_env_int("STORE_RETRY_ATTEMPTS", 3),
            store_retry_base_delay=_env_float("STORE_RETRY_BASE_DELAY", 0.5),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
