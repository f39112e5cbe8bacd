from collections import defaultdict
from typing import Dict, Iterable, List, Tuple
from .config import StatsConfig
from .models import NormalizedVisit, RescaledVisit

def counted_duration(duration: int, config: StatsConfig) -> int:
    """Seconds a visit contributes to time-on-page sums (0 below min_sec)."""
    if duration <= 0 or duration < config.min_sec:
        return 0
    return duration

def capped_duration(duration: int, config: StatsConfig) -> int:
    return min(counted_duration(duration, config), config.max_sec)

def normalize_visit(visit: RescaledVisit, config: StatsConfig) -> NormalizedVisit:
    counted = counted_duration(visit.duration, config)
    return NormalizedVisit(
        **visit.model_dump(),
        counted_duration=counted,
        capped_duration=min(counted, config.max_sec),
        open_marker=visit.duration == 0,
        below_min=0 < visit.duration < config.min_sec,
    )

def normalize_visits(visits: Iterable[RescaledVisit], config: StatsConfig) -> List[NormalizedVisit]:
    return [normalize_visit(v, config) for v in visits]

def uncapped_total(visits: Iterable[NormalizedVisit]) -> int:
    return sum(v.counted_duration for v in visits)

def capped_total(visits: Iterable[NormalizedVisit], config: StatsConfig) -> int:
    """
    Sum per page range first, cap each group at max_sec, then sum the groups.
    Matches KOReader's capped totals query (GROUP BY page, min(sum(duration), max_sec)).
    """
    per_page: Dict[Tuple[int, int], int] = defaultdict(int)
    for v in visits:
        if v.counted_duration:
            per_page[(v.first_page, v.last_page)] += v.counted_duration
    return sum(min(total, config.max_sec) for total in per_page.values())

def visited_pages(visits: Iterable[NormalizedVisit]) -> set:
    """Distinct current-layout pages touched by timed visits (open markers excluded)."""
    pages = set()
    for v in visits:
        if not v.open_marker:
            pages.update(v.page_range)
    return pages
