import json
import logging
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from cinesystem_watch.cache import FileCache, NullCache
from cinesystem_watch.models import MovieRecord, SessionRecord, UpcomingMovie
from cinesystem_watch.store import NormalizedStore

TZ = ZoneInfo("America/Maceio")


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _local(*args) -> datetime:
    return datetime(*args, tzinfo=TZ)


class NormalizedStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)
        self.cache = FileCache(self.dir, logging.getLogger("test"))
        self.clock = FakeClock(_local(2026, 3, 2, 10, 0, 0))
        self.store = NormalizedStore(self.cache, "America/Maceio", clock=self.clock)
        self.store.load()

    def test_merge_is_idempotent_and_first_write_wins(self) -> None:
        movie = MovieRecord(id="1", title="Original")
        self.assertEqual(self.store.merge_movies([movie]), 1)
        first_update = self.store.movies_updated_at
        self.assertIsNotNone(first_update)

        self.clock.now = _local(2026, 3, 2, 11, 0, 0)
        self.assertEqual(self.store.merge_movies([movie, MovieRecord(id="1", title="Corrected")]), 0)
        self.assertEqual(self.store.get_movie("1").title, "Original")
        self.assertEqual(self.store.movies_updated_at, first_update)
        self.assertEqual(list(self.store.get_all_movies()), ["1"])
        self.assertIsNone(self.store.get_movie("2"))

    def test_expiry_follows_venue_calendar_day(self) -> None:
        self.clock.now = _local(2026, 3, 2, 0, 0, 1)
        late_yesterday = _local(2026, 3, 1, 23, 59, 59).isoformat()
        self.store.set_sessions("2026-03-02", "1162", [SessionRecord(id="a", movie_id="1", time="20:00")], late_yesterday)
        self.assertIsNone(self.store.get_sessions("2026-03-02", "1162"))
        # evicted, not just hidden
        self.assertNotIn("2026-03-02", self.store.to_dict()["sessions"])

    def test_hit_many_hours_later_same_day(self) -> None:
        early = _local(2026, 3, 2, 0, 0, 1).isoformat()
        records = [SessionRecord(id="a", movie_id="1", time="20:00")]
        self.clock.now = _local(2026, 3, 2, 0, 0, 2)
        self.store.set_sessions("2026-03-02", "1162", records, early)
        self.clock.now = _local(2026, 3, 2, 23, 59, 0)
        envelope = self.store.get_sessions("2026-03-02", "1162")
        self.assertIsNotNone(envelope)
        self.assertEqual(envelope.items, records)

    def test_utc_timestamp_is_compared_in_venue_timezone(self) -> None:
        # 01:30 UTC on the 2nd is still the 1st in Maceio
        self.store.set_sessions("2026-03-02", "1162", [], "2026-03-02T01:30:00+00:00")
        self.assertIsNone(self.store.get_sessions("2026-03-02", "1162"))

    def test_replacement_is_atomic(self) -> None:
        now = self.clock.now.isoformat()
        records_a = [SessionRecord(id="a", movie_id="1", time="10:00"), SessionRecord(id="b", movie_id="1", time="12:00")]
        records_b = [SessionRecord(id="c", movie_id="2", time="15:00")]
        self.store.set_sessions("2026-03-02", "1162", records_a, now)
        self.store.set_sessions("2026-03-02", "1162", records_b, now)
        self.assertEqual(self.store.get_sessions("2026-03-02", "1162").items, records_b)

    def test_sources_are_kept_apart(self) -> None:
        now = self.clock.now.isoformat()
        self.store.set_sessions("2026-03-02", "1162", [SessionRecord(id="a", movie_id="1", time="10:00")], now)
        self.store.set_sessions("2026-03-02", "999", [SessionRecord(id="a", movie_id="1", time="11:00")], now)
        self.assertEqual(self.store.get_sessions("2026-03-02", "1162").items[0].time, "10:00")
        self.assertEqual(self.store.get_sessions("2026-03-02", "999").items[0].time, "11:00")
        self.assertIsNone(self.store.get_sessions("2026-03-03", "1162"))

    def test_past_days_are_purged_on_set(self) -> None:
        now = self.clock.now.isoformat()
        self.store.set_sessions("2026-03-01", "1162", [], now)
        self.store.set_sessions("2026-03-02", "1162", [], now)
        self.store.set_sessions("2026-03-05", "1162", [], now)
        self.assertEqual(sorted(self.store.to_dict()["sessions"]), ["2026-03-02", "2026-03-05"])

    def test_upcoming_envelope(self) -> None:
        items = [UpcomingMovie(id="9", title="Novo", formats=["3D"], price_from=28.0)]
        self.store.set_upcoming("1162", items, self.clock.now.isoformat())
        self.assertEqual(self.store.get_upcoming("1162").items, items)
        self.assertIsNone(self.store.get_upcoming("999"))

        self.clock.now = _local(2026, 3, 3, 0, 0, 1)
        self.assertIsNone(self.store.get_upcoming("1162"))
        self.assertEqual(self.store.to_dict()["upcoming"], {})

    def test_persists_and_reloads(self) -> None:
        now = self.clock.now.isoformat()
        self.store.merge_movies([MovieRecord(id="1", title="Filme", genres=["Drama"], duration=120)])
        self.store.set_sessions("2026-03-02", "1162", [SessionRecord(id="a", movie_id="1", time="10:00", price=30.0)], now)
        self.store.set_upcoming("1162", [UpcomingMovie(id="9", title="Novo")], now)

        saved = json.loads((self.dir / "cache.json").read_text("utf-8"))
        self.assertEqual(set(saved), {"movies", "sessions", "upcoming", "movies_updated_at"})
        self.assertEqual(saved["sessions"]["2026-03-02"]["1162"]["fetched_at"], now)

        reloaded = NormalizedStore(self.cache, "America/Maceio", clock=self.clock)
        reloaded.load()
        self.assertEqual(reloaded.get_movie("1").genres, ["Drama"])
        self.assertEqual(reloaded.get_sessions("2026-03-02", "1162").items[0].price, 30.0)
        self.assertEqual(reloaded.get_upcoming("1162").items[0].title, "Novo")
        self.assertEqual(reloaded.movies_updated_at, self.store.movies_updated_at)

    def test_corrupt_file_loads_as_empty(self) -> None:
        (self.dir / "cache.json").write_text("{not json", "utf-8")
        store = NormalizedStore(self.cache, "America/Maceio", clock=self.clock)
        with self.assertLogs("test", level="WARNING"):
            store.load()
        self.assertEqual(store.get_all_movies(), {})

    def test_wrong_shape_loads_as_empty(self) -> None:
        (self.dir / "cache.json").write_text(json.dumps(["a", "b"]), "utf-8")
        store = NormalizedStore(self.cache, "America/Maceio", clock=self.clock)
        store.load()
        self.assertEqual(store.to_dict()["movies"], {})

    def test_bad_records_are_skipped(self) -> None:
        doc = {
            "movies": {"1": {"id": "1", "title": "Ok"}, "2": {"title": "no id"}},
            "sessions": {"2026-03-02": {"1162": {"fetched_at": self.clock.now.isoformat(), "items": [{"id": "a"}]}}},
            "upcoming": "broken",
            "movies_updated_at": None,
        }
        (self.dir / "cache.json").write_text(json.dumps(doc), "utf-8")
        store = NormalizedStore(self.cache, "America/Maceio", clock=self.clock)
        store.load()
        self.assertEqual(list(store.get_all_movies()), ["1"])
        self.assertIsNone(store.get_sessions("2026-03-02", "1162"))

    def test_write_failure_keeps_memory_state(self) -> None:
        store = NormalizedStore(NullCache(), "America/Maceio", clock=self.clock)
        store.load()
        records = [SessionRecord(id="a", movie_id="1", time="10:00")]
        store.set_sessions("2026-03-02", "1162", records, self.clock.now.isoformat())
        self.assertFalse(store.save())
        self.assertEqual(store.get_sessions("2026-03-02", "1162").items, records)

    def test_today_uses_venue_timezone(self) -> None:
        self.clock.now = datetime.fromisoformat("2026-03-02T02:00:00+00:00")
        self.assertEqual(self.store.today(), "2026-03-01")


if __name__ == "__main__":
    unittest.main()
