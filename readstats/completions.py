"""
Completion detection.

A read-through ends when the reading position has reached the book's final page
(in the current page layout) and a later session starts again at or near page 1.
The sessions before that restart form one Completion. The last span counts too
once it has reached the final page, unless `count_trailing_finish` is off.

Every span must also look like an actual read-through: it must cover at least
`min_completion_percentage` of the pages and touch both the first
`min_early_percentage` and the last `min_late_percentage` of the book. Jumping
to the ending and then starting over is not a completion.
"""
import logging
from typing import List, Optional, Sequence, Set
from .config import StatsConfig
from .models import Completion, Session
from .timeconfig import TimeConfig

logger = logging.getLogger(__name__)

class CompletionDetector:
    def __init__(self, config: Optional[StatsConfig] = None, time_config: Optional[TimeConfig] = None):
        self.config = config or StatsConfig()
        self.time_config = time_config or TimeConfig()

    def restart_threshold(self, total_pages: int) -> int:
        """Highest page a session may start on and still count as a restart from the beginning."""
        return max(1, int(total_pages * self.config.restart_percentage))

    def early_threshold(self, total_pages: int) -> int:
        return max(1, int(total_pages * self.config.min_early_percentage))

    def late_threshold(self, total_pages: int) -> int:
        return min(total_pages, int(total_pages * (1.0 - self.config.min_late_percentage)))

    def is_valid(self, span: Sequence[Session], total_pages: int) -> bool:
        pages: Set[int] = set()
        for s in span:
            pages.update(s.pages)
        if not pages:
            return False

        coverage = len(pages) / total_pages
        if coverage < self.config.min_completion_percentage:
            logger.debug(
                f"Span covers {coverage:.0%} of pages, below {self.config.min_completion_percentage:.0%}"
            )
            return False

        has_early = min(pages) <= self.early_threshold(total_pages)
        has_late = max(pages) >= self.late_threshold(total_pages)
        if not (has_early and has_late):
            logger.debug(f"Span doesn't run from beginning to end (early: {has_early}, late: {has_late})")
            return False
        return True

    def detect(self, sessions: Sequence[Session], total_pages: Optional[int]) -> List[Completion]:
        if not sessions:
            return []
        if not total_pages or total_pages <= 0:
            logger.debug("No valid page count, skipping completion detection")
            return []

        threshold = self.restart_threshold(total_pages)
        ordered = sorted(sessions, key=lambda s: s.start_time)

        completions: List[Completion] = []
        span: List[Session] = []
        reached_end = False

        for session in ordered:
            if span and reached_end and session.first_page <= threshold and self.is_valid(span, total_pages):
                logger.debug(
                    f"Restart at page {session.first_page} (threshold {threshold}) after reaching "
                    f"page {total_pages}, closing read-through of {len(span)} sessions"
                )
                completions.append(self._build(span))
                span = []
                reached_end = False

            span.append(session)
            if session.max_page >= total_pages:
                reached_end = True

        if (span and reached_end and self.config.count_trailing_finish
                and self.is_valid(span, total_pages)):
            completions.append(self._build(span))

        return completions

    def _build(self, span: Sequence[Session]) -> Completion:
        pages = set()
        for s in span:
            pages.update(s.pages)
        timed = [s for s in span if s.is_timed]
        return Completion(
            start_date=self.time_config.date_for_timestamp(span[0].start_time),
            end_date=self.time_config.date_for_timestamp(max(s.end_time for s in span)),
            reading_time=sum(s.duration for s in span),
            session_count=len(timed),
            pages_read=len(pages),
        )
