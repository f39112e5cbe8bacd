import json
import tempfile
import unittest
from pathlib import Path
from readstats.models import BookKey
from readstats.state import StateManager
from readstats.timeconfig import TimeConfig
from datetime import date

class TestStateManager(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "cache" / "state.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_round_trip(self):
        sm = StateManager(str(self.path))
        sm.record_read("kobo", [BookKey(title="Dune", authors="", md5="abc")])
        sm.record_failure("phone", "timed out after 30s")
        sm.save()

        reloaded = StateManager(str(self.path))
        self.assertEqual(reloaded.state.sources["kobo"].books[0].authors, "N/A")
        self.assertEqual(reloaded.state.sources["phone"].error_count, 1)
        self.assertEqual(reloaded.state.sources["phone"].last_result, "timed out after 30s")

    def test_corrupt_cache_starts_fresh(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json")
        sm = StateManager(str(self.path))
        self.assertEqual(sm.state.sources, {})

    def test_persist_disabled(self):
        sm = StateManager(str(self.path), persist=False)
        sm.record_read("kobo", [])
        sm.save()
        self.assertFalse(self.path.exists())

    def test_successful_read_resets_errors(self):
        sm = StateManager(None)
        sm.record_failure("kobo", "locked")
        sm.record_read("kobo", [])
        status = sm.get_source_status("kobo")
        self.assertEqual((status.error_count, status.last_result), (0, "ok"))
        self.assertEqual(json.loads(sm.state.model_dump_json())["sources"]["kobo"]["books"], [])

class TestTimeConfig(unittest.TestCase):
    def test_day_start_offset(self):
        # 02:00 UTC belongs to the previous day when days start at 03:00
        tc = TimeConfig.from_strings(None, "03:00")
        self.assertEqual(tc.date_for_timestamp(1709258400), date(2024, 2, 29))
        self.assertEqual(TimeConfig().date_for_timestamp(1709258400), date(2024, 3, 1))

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            TimeConfig.from_strings("Not/AZone", None)
        with self.assertRaises(ValueError):
            TimeConfig.from_strings(None, "25:00")
        with self.assertRaises(ValueError):
            TimeConfig.from_strings(None, "0300")

if __name__ == '__main__':
    unittest.main()
