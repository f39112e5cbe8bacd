from typing import Dict, List, Optional
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Sources
    STATS_SOURCE_PATHS: str = ""  # comma separated statistics.sqlite3 paths
    SOURCE_READ_TIMEOUT_SECONDS: int = 30

    # Duration normalization
    MIN_SEC: int = 5
    MAX_SEC: int = 120

    # Sessions & completions
    SESSION_GAP_SECONDS: int = 300
    COMPLETION_RESTART_PERCENTAGE: float = 0.2
    COMPLETION_COUNT_TRAILING_FINISH: bool = True
    COMPLETION_MIN_PERCENTAGE: float = 0.75  # share of pages visited
    COMPLETION_MIN_EARLY_PERCENTAGE: float = 0.20  # must touch the first 20%
    COMPLETION_MIN_LATE_PERCENTAGE: float = 0.02  # must touch the last 2%

    # Heatmap scale
    HEATMAP_MAX_SCALE_SECONDS: Optional[int] = None
    BOOK_MAX_SCALE_SECONDS: Dict[str, int] = {}  # md5 -> seconds

    # Dates
    TIMEZONE: Optional[str] = None
    DAY_START_TIME: Optional[str] = None  # HH:MM

    # Persistence
    STATE_PATH: str = "/data/state.json"
    PERSIST_ENABLED: bool = True
    OUTPUT_DIR: str = "/data/stats"

    # Runner
    STATS_INTERVAL_SECONDS: int = 0  # 0 = run once
    PROJECTION_CHUNK_SIZE: int = 10

    # System
    LOG_LEVEL: str = "INFO"
    HTTP_SERVER_ENABLED: bool = False
    HTTP_SERVER_PORT: int = 8080
    HTTP_SERVER_TOKEN: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def source_paths(self) -> List[str]:
        return [p.strip() for p in self.STATS_SOURCE_PATHS.split(",") if p.strip()]


class StatsConfig(BaseModel):
    """Knobs the computation depends on. Passed explicitly so results are a pure function of it."""
    min_sec: int = 5
    max_sec: int = 120
    session_gap_seconds: int = 300
    restart_percentage: float = 0.2
    count_trailing_finish: bool = True
    min_completion_percentage: float = 0.75
    min_early_percentage: float = 0.20
    min_late_percentage: float = 0.02
    max_scale_seconds: Optional[int] = None
    book_max_scale_seconds: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, s: "Settings") -> "StatsConfig":
        return cls(
            min_sec=s.MIN_SEC,
            max_sec=s.MAX_SEC,
            session_gap_seconds=s.SESSION_GAP_SECONDS,
            restart_percentage=s.COMPLETION_RESTART_PERCENTAGE,
            count_trailing_finish=s.COMPLETION_COUNT_TRAILING_FINISH,
            min_completion_percentage=s.COMPLETION_MIN_PERCENTAGE,
            min_early_percentage=s.COMPLETION_MIN_EARLY_PERCENTAGE,
            min_late_percentage=s.COMPLETION_MIN_LATE_PERCENTAGE,
            max_scale_seconds=s.HEATMAP_MAX_SCALE_SECONDS,
            book_max_scale_seconds=dict(s.BOOK_MAX_SCALE_SECONDS),
        )

    def scale_for(self, md5: str) -> Optional[int]:
        return self.book_max_scale_seconds.get(md5, self.max_scale_seconds)

settings = Settings()
