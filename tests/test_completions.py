import unittest
from datetime import date
from readstats.completions import CompletionDetector
from readstats.config import StatsConfig
from readstats.models import RawVisit
from readstats.normalize import normalize_visits
from readstats.rescale import rescale_history
from readstats.sessions import reconstruct_sessions

MARCH_1_2024 = 1709251200
DAY = 86400

def read_pages(first, last, start, duration=60, total=100):
    """One visit per page, back to back."""
    return [
        RawVisit(page=p, start_time=start + i * duration, duration=duration, total_pages=total)
        for i, p in enumerate(range(first, last + 1))
    ]

class TestCompletionDetector(unittest.TestCase):
    def setUp(self):
        self.config = StatsConfig()
        self.detector = CompletionDetector(self.config)

    def sessions(self, visits, current_pages=100):
        normalized = normalize_visits(rescale_history(visits, current_pages), self.config)
        return reconstruct_sessions(normalized, self.config)

    def test_finish_then_restart_is_one_completion(self):
        visits = (
            read_pages(1, 50, MARCH_1_2024)
            + read_pages(51, 100, MARCH_1_2024 + DAY)
            + read_pages(3, 10, MARCH_1_2024 + 9 * DAY)
        )
        completions = self.detector.detect(self.sessions(visits), 100)
        self.assertEqual(len(completions), 1)

        c = completions[0]
        self.assertEqual(c.start_date, date(2024, 3, 1))
        self.assertEqual(c.end_date, date(2024, 3, 2))
        self.assertEqual(c.reading_time, 6000)
        self.assertEqual(c.session_count, 2)
        self.assertEqual(c.pages_read, 100)
        self.assertEqual(c.average_session_duration, 3000)
        self.assertAlmostEqual(c.average_speed, 60.0)
        self.assertEqual(c.calendar_length_days, 1)

    def test_finished_without_restart_counts(self):
        visits = read_pages(1, 100, MARCH_1_2024)
        completions = self.detector.detect(self.sessions(visits), 100)
        self.assertEqual(len(completions), 1)
        self.assertEqual(completions[0].pages_read, 100)
        self.assertEqual(completions[0].calendar_length_days, 0)

    def test_trailing_finish_can_be_disabled(self):
        detector = CompletionDetector(StatsConfig(count_trailing_finish=False))
        visits = read_pages(1, 100, MARCH_1_2024)
        self.assertEqual(detector.detect(self.sessions(visits), 100), [])

    def test_peek_at_ending_is_not_a_completion(self):
        visits = (
            read_pages(1, 10, MARCH_1_2024)
            + read_pages(100, 100, MARCH_1_2024 + 3600)
            + read_pages(1, 5, MARCH_1_2024 + 2 * DAY)
        )
        self.assertEqual(self.detector.detect(self.sessions(visits), 100), [])

    def test_skipping_the_beginning_is_not_a_completion(self):
        visits = read_pages(21, 100, MARCH_1_2024)
        self.assertEqual(self.detector.detect(self.sessions(visits), 100), [])

    def test_coverage_threshold_is_configurable(self):
        # 70 of 100 pages, including the first and the last
        visits = read_pages(1, 60, MARCH_1_2024) + read_pages(91, 100, MARCH_1_2024 + DAY)
        self.assertEqual(self.detector.detect(self.sessions(visits), 100), [])
        lenient = CompletionDetector(StatsConfig(min_completion_percentage=0.6))
        self.assertEqual(len(lenient.detect(self.sessions(visits), 100)), 1)

    def test_mid_read_has_no_completion(self):
        visits = read_pages(1, 60, MARCH_1_2024) + read_pages(1, 5, MARCH_1_2024 + 3 * DAY)
        self.assertEqual(self.detector.detect(self.sessions(visits), 100), [])

    def test_jump_back_to_middle_is_not_a_restart(self):
        visits = (
            read_pages(1, 100, MARCH_1_2024)
            + read_pages(50, 60, MARCH_1_2024 + 2 * DAY)
        )
        (completion,) = self.detector.detect(self.sessions(visits), 100)
        self.assertEqual(completion.session_count, 2)
        self.assertEqual(completion.end_date, date(2024, 3, 3))

    def test_two_read_throughs(self):
        visits = (
            read_pages(1, 100, MARCH_1_2024)
            + read_pages(1, 100, MARCH_1_2024 + 10 * DAY)
            + read_pages(1, 2, MARCH_1_2024 + 20 * DAY)
        )
        completions = self.detector.detect(self.sessions(visits), 100)
        self.assertEqual([c.start_date for c in completions], [date(2024, 3, 1), date(2024, 3, 11)])

    def test_restart_tolerance_is_configurable(self):
        visits = read_pages(1, 100, MARCH_1_2024) + read_pages(15, 20, MARCH_1_2024 + 5 * DAY)
        # page 15 is past a 10% restart window, so that session extends the read-through
        strict = CompletionDetector(StatsConfig(restart_percentage=0.1))
        self.assertEqual([c.end_date for c in strict.detect(self.sessions(visits), 100)], [date(2024, 3, 6)])
        self.assertEqual([c.end_date for c in self.detector.detect(self.sessions(visits), 100)], [date(2024, 3, 1)])

    def test_final_page_in_rescaled_coordinates(self):
        # recorded on a 200 page layout, book now renders as 100 pages
        visits = read_pages(1, 200, MARCH_1_2024, total=200) + read_pages(1, 4, MARCH_1_2024 + 4 * DAY, total=200)
        completions = self.detector.detect(self.sessions(visits, current_pages=100), 100)
        self.assertEqual(len(completions), 1)
        self.assertEqual(completions[0].pages_read, 100)

    def test_no_page_count(self):
        visits = read_pages(1, 10, MARCH_1_2024)
        self.assertEqual(self.detector.detect(self.sessions(visits), None), [])
        self.assertEqual(self.detector.detect([], 100), [])

if __name__ == '__main__':
    unittest.main()
