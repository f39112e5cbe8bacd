import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple
from .models import DailyActivity, LibraryStats, StreakInfo, WeeklyStats
from .projector import StatsProjector
from .sessions import session_durations

logger = logging.getLogger(__name__)

def build_library_stats(projectors: Sequence[StatsProjector], today: Optional[date] = None) -> LibraryStats:
    """Cross-book totals. Pages are counted per book, so one page read in two books counts twice."""
    daily_time: Dict[date, int] = defaultdict(int)
    daily_pages: Dict[date, int] = defaultdict(int)
    durations: List[int] = []
    stats = LibraryStats()

    for p in projectors:
        stats.total_read_time += p.total_read_time()
        stats.total_page_reads += p.distinct_pages_read()
        durations.extend(session_durations(p.sessions))

        for day, activity in p.daily_index().items():
            daily_time[day] += activity.read_time
            daily_pages[day] += activity.pages_read

        done = len(p.completions())
        if done:
            stats.total_completions += done
            stats.books_completed += 1
            stats.most_completions = max(stats.most_completions, done)

    stats.longest_read_time_in_day = max(daily_time.values(), default=0)
    stats.most_pages_in_day = max(daily_pages.values(), default=0)
    if durations:
        stats.average_session_duration = sum(durations) // len(durations)
        stats.longest_session_duration = max(durations)

    days = sorted(daily_time)
    stats.daily_activity = [
        DailyActivity(date=d.isoformat(), pages_read=daily_pages[d], read_time=daily_time[d]) for d in days
    ]
    stats.weeks = build_weekly_stats(daily_time, daily_pages)
    reading_days = [d for d in days if daily_pages[d] > 0]
    stats.longest_streak, stats.current_streak = calculate_streaks(reading_days, today or date.today())
    return stats

def build_weekly_stats(daily_time: Dict[date, int], daily_pages: Dict[date, int]) -> List[WeeklyStats]:
    weeks: Dict[Tuple[int, int], List[int]] = defaultdict(lambda: [0, 0])
    for day, seconds in daily_time.items():
        iso = day.isocalendar()
        entry = weeks[(iso[0], iso[1])]
        entry[0] += seconds
        entry[1] += daily_pages.get(day, 0)

    result = []
    for (year, week), (read_time, pages_read) in weeks.items():
        start = date.fromisocalendar(year, week, 1)
        result.append(WeeklyStats(
            start_date=start.isoformat(),
            end_date=(start + timedelta(days=6)).isoformat(),
            read_time=read_time,
            pages_read=pages_read,
            avg_pages_per_day=pages_read / 7.0,
            avg_read_time_per_day=read_time / 7.0,
        ))
    # newest first
    result.sort(key=lambda w: w.start_date, reverse=True)
    return result

def calculate_streaks(reading_days: Sequence[date], today: date) -> Tuple[StreakInfo, StreakInfo]:
    """Returns (longest, current). A current streak needs a reading day today or yesterday."""
    if not reading_days:
        return StreakInfo(), StreakInfo()

    ordered = sorted(set(reading_days))
    streaks: List[Tuple[int, date, date]] = []
    start = prev = ordered[0]
    length = 1
    for day in ordered[1:]:
        if day == prev + timedelta(days=1):
            length += 1
        else:
            streaks.append((length, start, prev))
            start, length = day, 1
        prev = day
    streaks.append((length, start, prev))

    # first of equally long streaks wins
    best = max(streaks, key=lambda s: s[0])
    longest = StreakInfo(days=best[0], start_date=best[1].isoformat(), end_date=best[2].isoformat())

    last_length, last_start, last_end = streaks[-1]
    if (today - last_end).days <= 1:
        current = StreakInfo(days=last_length, start_date=last_start.isoformat())
    else:
        current = StreakInfo()
    return longest, current
