import unittest
from readstats.config import StatsConfig
from readstats.models import RawVisit
from readstats.normalize import normalize_visit
from readstats.rescale import rescale_visit
from readstats.sessions import reconstruct_sessions, session_durations

def nv(page, start, duration, total=100, current=100, config=None):
    config = config or StatsConfig()
    raw = RawVisit(page=page, start_time=start, duration=duration, total_pages=total)
    return normalize_visit(rescale_visit(raw, current), config)

class TestSessionReconstructor(unittest.TestCase):
    def setUp(self):
        self.config = StatsConfig(session_gap_seconds=90)

    def starts(self, sessions):
        return [[v.start_time for v in s.visits] for s in sessions]

    def test_gap_splits_sessions(self):
        visits = [nv(1, 0, 0), nv(2, 60, 0), nv(3, 125, 0), nv(4, 500, 0)]
        sessions = reconstruct_sessions(visits, self.config)
        self.assertEqual(self.starts(sessions), [[0, 60, 125], [500]])

    def test_gap_measured_from_previous_visit_end(self):
        visits = [nv(1, 0, 30), nv(2, 60, 30), nv(3, 125, 30), nv(4, 500, 30)]
        sessions = reconstruct_sessions(visits, self.config)
        self.assertEqual(self.starts(sessions), [[0, 60, 125], [500]])
        self.assertEqual(session_durations(sessions), [90, 30])

    def test_gap_equal_to_threshold_splits(self):
        sessions = reconstruct_sessions([nv(1, 0, 10), nv(2, 100, 10)], self.config)
        self.assertEqual(len(sessions), 2)

    def test_unordered_input(self):
        visits = [nv(4, 500, 10), nv(1, 0, 10), nv(2, 60, 10)]
        sessions = reconstruct_sessions(visits, self.config)
        self.assertEqual(self.starts(sessions), [[0, 60], [500]])

    def test_session_accumulates(self):
        visits = [nv(5, 0, 40), nv(6, 45, 40), nv(5, 90, 20)]
        (session,) = reconstruct_sessions(visits, self.config)
        self.assertEqual(session.start_time, 0)
        self.assertEqual(session.end_time, 110)
        self.assertEqual(session.duration, 100)
        self.assertEqual(session.page_count, 2)
        self.assertEqual(session.first_page, 5)
        self.assertEqual(session.max_page, 6)

    def test_open_marker_tail_does_not_inflate(self):
        visits = [nv(1, 0, 30), nv(2, 40, 30), nv(3, 80, 0)]
        (session,) = reconstruct_sessions(visits, self.config)
        self.assertEqual(session.duration, 60)
        self.assertEqual(session.pages, {1, 2})
        self.assertEqual(session.max_page, 3)

    def test_untimed_sessions_excluded_from_durations(self):
        visits = [nv(1, 0, 30), nv(2, 10000, 0)]
        sessions = reconstruct_sessions(visits, self.config)
        self.assertEqual(len(sessions), 2)
        self.assertEqual(session_durations(sessions), [30])

    def test_empty(self):
        self.assertEqual(reconstruct_sessions([], self.config), [])

if __name__ == '__main__':
    unittest.main()
