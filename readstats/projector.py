import logging
from collections import defaultdict
from datetime import date
from functools import cached_property
from typing import Dict, List, Optional, Set
from .completions import CompletionDetector
from .config import StatsConfig
from .models import ActivityYear, BookStats, Completion, DailyActivity, MergedHistory, NormalizedVisit, Session
from .normalize import capped_total, normalize_visits, uncapped_total, visited_pages
from .rescale import rescale_history
from .sessions import reconstruct_sessions, session_durations
from .timeconfig import TimeConfig

logger = logging.getLogger(__name__)

class StatsProjector:
    """
    Read-only statistics for one book.

    The pipeline (rescale -> normalize -> sessions -> completions) runs lazily once per
    projector; every view is derived from those cached intermediates. An empty history is
    valid and yields zero counts, `None` dates and empty lists.
    """

    def __init__(self, history: MergedHistory, config: Optional[StatsConfig] = None,
                 time_config: Optional[TimeConfig] = None):
        self.history = history
        self.config = config or StatsConfig()
        self.time_config = time_config or TimeConfig()
        self.warnings: List[str] = []

    @property
    def current_pages(self) -> Optional[int]:
        return self.history.book.pages

    @cached_property
    def visits(self) -> List[NormalizedVisit]:
        rescaled = rescale_history(self.history.visits, self.current_pages, self.warnings)
        return normalize_visits(rescaled, self.config)

    @cached_property
    def sessions(self) -> List[Session]:
        return reconstruct_sessions(self.visits, self.config)

    def total_read_time(self, capped: bool = False) -> int:
        if capped:
            return capped_total(self.visits, self.config)
        return uncapped_total(self.visits)

    def distinct_pages_read(self) -> int:
        return len(visited_pages(self.visits))

    def current_page(self) -> Optional[int]:
        """Last page reached, open position markers included."""
        if not self.visits:
            return None
        return self.visits[-1].last_page

    def session_count(self) -> int:
        return len(session_durations(self.sessions))

    def average_session_duration(self) -> int:
        durations = session_durations(self.sessions)
        if not durations:
            return 0
        return sum(durations) // len(durations)

    def longest_session_duration(self) -> int:
        return max(session_durations(self.sessions), default=0)

    def reading_speed_pages_per_hour(self) -> float:
        total = self.total_read_time()
        if total <= 0:
            return 0.0
        return self.distinct_pages_read() * 3600.0 / total

    def last_read_date(self) -> Optional[date]:
        timestamps = [v.start_time for v in self.visits if not v.open_marker]
        if not timestamps:
            return None
        return self.time_config.date_for_timestamp(max(timestamps))

    @cached_property
    def _completions(self) -> List[Completion]:
        detector = CompletionDetector(self.config, self.time_config)
        return detector.detect(self.sessions, self.current_pages)

    def completions(self) -> List[Completion]:
        return sorted(self._completions, key=lambda c: c.start_date)

    @cached_property
    def _daily(self) -> Dict[date, DailyActivity]:
        pages: Dict[date, Set[int]] = defaultdict(set)
        seconds: Dict[date, int] = defaultdict(int)
        for v in self.visits:
            if v.open_marker:
                continue
            day = self.time_config.date_for_timestamp(v.start_time)
            pages[day].update(v.page_range)
            seconds[day] += v.counted_duration
        return {
            day: DailyActivity(date=day.isoformat(), pages_read=len(pages[day]), read_time=seconds[day])
            for day in sorted(pages)
        }

    def daily_activity(self, year: Optional[int] = None) -> ActivityYear:
        days = [d for day, d in self._daily.items() if year is None or day.year == year]
        return ActivityYear(
            year=year or 0,
            data=days,
            max_scale_override=self.config.scale_for(self.history.key.md5),
        )

    def daily_index(self) -> Dict[date, DailyActivity]:
        return dict(self._daily)

    def active_years(self) -> List[int]:
        return sorted({day.year for day in self._daily}, reverse=True)

    def snapshot(self) -> BookStats:
        stats = BookStats(
            book=self.history.book,
            total_read_time=self.total_read_time(),
            total_read_time_capped=self.total_read_time(capped=True),
            distinct_pages_read=self.distinct_pages_read(),
            current_page=self.current_page(),
            session_count=self.session_count(),
            average_session_duration=self.average_session_duration(),
            longest_session_duration=self.longest_session_duration(),
            reading_speed=self.reading_speed_pages_per_hour(),
            last_read_date=self.last_read_date(),
            completions=self.completions(),
            active_years=self.active_years(),
            warnings=list(self.warnings),
        )
        logger.debug(
            f"{self.history.key.label()}: {stats.session_count} sessions, "
            f"{len(stats.completions)} completions, {stats.total_read_time}s read"
        )
        return stats
