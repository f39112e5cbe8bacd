import logging
from typing import Iterable, List, Optional, Tuple
from .errors import MalformedRecord
from .models import RawVisit, RescaledVisit

logger = logging.getLogger(__name__)

def check_page(page: int, total_pages: int):
    if total_pages is None or total_pages <= 0:
        raise MalformedRecord(f"invalid total page count {total_pages!r} for page {page}")
    if page < 1:
        raise MalformedRecord(f"invalid page number {page}")

def rescale_page(page: int, total_pages: int, current_pages: Optional[int]) -> Tuple[int, int]:
    """
    Map a page recorded under `total_pages` onto the inclusive page range it covers
    under `current_pages`. Same integer arithmetic as KOReader's page_stat view.
    """
    check_page(page, total_pages)
    if not current_pages or current_pages <= 0:
        current_pages = total_pages

    first_page = ((page - 1) * current_pages) // total_pages + 1
    last_page = max(first_page, (page * current_pages) // total_pages)
    return first_page, last_page

def rescale_visit(visit: RawVisit, current_pages: Optional[int]) -> RescaledVisit:
    try:
        first_page, last_page = rescale_page(visit.page, visit.total_pages, current_pages)
    except MalformedRecord as e:
        e.record = visit
        raise
    return RescaledVisit(
        page=visit.page,
        first_page=first_page,
        last_page=last_page,
        start_time=visit.start_time,
        duration=visit.duration,
        total_pages=visit.total_pages,
    )

def rescale_history(visits: Iterable[RawVisit], current_pages: Optional[int],
                    warnings: Optional[List[str]] = None) -> List[RescaledVisit]:
    """Rescale every visit, dropping malformed ones. Result is ordered by (start_time, first_page)."""
    result = []
    for visit in visits:
        try:
            result.append(rescale_visit(visit, current_pages))
        except MalformedRecord as e:
            msg = f"Dropped visit page={visit.page} start_time={visit.start_time}: {e}"
            logger.warning(msg)
            if warnings is not None:
                warnings.append(msg)
    result.sort(key=lambda v: (v.start_time, v.first_page))
    return result
