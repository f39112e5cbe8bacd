import logging
from typing import List, Optional, Sequence
from .config import StatsConfig
from .models import NormalizedVisit, Session

logger = logging.getLogger(__name__)

def _open_session(visit: NormalizedVisit) -> Session:
    session = Session(start_time=visit.start_time, end_time=visit.start_time)
    _extend(session, visit)
    return session

def _extend(session: Session, visit: NormalizedVisit):
    session.visits.append(visit)
    session.end_time = max(session.end_time, visit.end_time)
    session.duration += visit.counted_duration
    if not visit.open_marker:
        session.pages.update(visit.page_range)

def reconstruct_sessions(visits: Sequence[NormalizedVisit], config: Optional[StatsConfig] = None) -> List[Session]:
    """
    Partition a book's visits into sessions. A visit joins the current session while the
    gap between the previous visit's end and its start is below session_gap_seconds.
    """
    config = config or StatsConfig()
    ordered = sorted(visits, key=lambda v: (v.start_time, v.first_page))

    sessions: List[Session] = []
    current: Optional[Session] = None

    for visit in ordered:
        # end_time tracks the furthest visit end seen so far in the session
        if current is not None and visit.start_time - current.end_time < config.session_gap_seconds:
            _extend(current, visit)
        else:
            current = _open_session(visit)
            sessions.append(current)

    logger.debug(f"Reconstructed {len(sessions)} sessions from {len(ordered)} visits")
    return sessions

def session_durations(sessions: Sequence[Session]) -> List[int]:
    return [s.duration for s in sessions if s.is_timed]
