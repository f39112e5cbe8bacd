import unittest
from readstats.config import StatsConfig
from readstats.models import RawVisit
from readstats.normalize import (
    capped_duration, capped_total, counted_duration, normalize_visit, uncapped_total, visited_pages,
)
from readstats.rescale import rescale_visit

def nv(page, start, duration, total=100, current=100, config=None):
    config = config or StatsConfig()
    raw = RawVisit(page=page, start_time=start, duration=duration, total_pages=total)
    return normalize_visit(rescale_visit(raw, current), config)

class TestDurationNormalizer(unittest.TestCase):
    def setUp(self):
        self.config = StatsConfig(min_sec=5, max_sec=120)

    def test_cap_invariant(self):
        for d in (0, 1, 4, 5, 6, 60, 119, 120, 121, 500, 10000):
            capped = capped_duration(d, self.config)
            self.assertLessEqual(capped, self.config.max_sec)
            expected_uncapped = d if d >= self.config.min_sec else 0
            self.assertEqual(counted_duration(d, self.config), expected_uncapped)

    def test_open_marker(self):
        v = nv(10, 100, 0)
        self.assertTrue(v.open_marker)
        self.assertFalse(v.below_min)
        self.assertEqual(v.counted_duration, 0)

    def test_below_min_still_visited(self):
        v = nv(10, 100, 3)
        self.assertTrue(v.below_min)
        self.assertEqual(v.counted_duration, 0)
        self.assertEqual(visited_pages([v]), {10})

    def test_open_marker_not_visited(self):
        self.assertEqual(visited_pages([nv(10, 100, 0)]), set())

    def test_capped_groups_per_page_before_cap(self):
        visits = [
            nv(1, 0, 100),
            nv(1, 500, 50),   # page 1 totals 150 -> capped to 120
            nv(2, 1000, 30),
            nv(3, 1100, 300), # capped to 120
            nv(4, 1500, 3),   # below min, no time
        ]
        self.assertEqual(capped_total(visits, self.config), 120 + 30 + 120)
        self.assertEqual(uncapped_total(visits), 100 + 50 + 30 + 300)

    def test_overrides(self):
        config = StatsConfig(min_sec=10, max_sec=60)
        visits = [nv(1, 0, 8, config=config), nv(2, 20, 90, config=config)]
        self.assertEqual(uncapped_total(visits), 90)
        self.assertEqual(capped_total(visits, config), 60)

    def test_multi_page_range_is_one_group(self):
        # 30 -> 300 pages: page 1 covers 1..10 and keeps its whole duration
        v = nv(1, 0, 200, total=30, current=300)
        self.assertEqual(visited_pages([v]), set(range(1, 11)))
        self.assertEqual(capped_total([v], self.config), 120)
        self.assertEqual(uncapped_total([v]), 200)

if __name__ == '__main__':
    unittest.main()
