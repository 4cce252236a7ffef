"""Normalized showtimes cache.

Document layout, stored under one cache key::

    {
      "movies": {movie_id: MovieRecord},              # static, first write wins
      "sessions": {day: {source_id: envelope}},       # dynamic, per day/theater
      "upcoming": {source_id: envelope},              # upcoming releases
      "movies_updated_at": ISO string | null
    }

An envelope is ``{"fetched_at": ISO string, "items": [...]}``. Envelopes are
valid only while ``fetched_at`` falls on the venue's current calendar day;
the first lookup after the venue's midnight evicts them.
"""

import logging
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from .cache import Cache
from .models import CacheEnvelope, MovieRecord, SessionRecord, UpcomingMovie

CACHE_KEY = "cache"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


class NormalizedStore:
    def __init__(
        self,
        cache: Cache,
        tz_name: str = "America/Maceio",
        clock: Callable[[], datetime] = _utc_now,
        key: str = CACHE_KEY,
    ) -> None:
        self._cache = cache
        self._tz = ZoneInfo(tz_name)
        self._clock = clock
        self._key = key
        self._logger = logging.getLogger(__name__)
        self._movies: dict[str, MovieRecord] = {}
        self._sessions: dict[str, dict[str, CacheEnvelope]] = {}
        self._upcoming: dict[str, CacheEnvelope] = {}
        self.movies_updated_at: Optional[str] = None

    # -- calendar ---------------------------------------------------------

    def local_date(self, moment: datetime) -> date:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self._tz).date()

    def today(self) -> str:
        return self.local_date(self._clock()).isoformat()

    def _is_fresh(self, envelope: CacheEnvelope) -> bool:
        try:
            fetched = datetime.fromisoformat(envelope.fetched_at)
        except (TypeError, ValueError):
            return False
        return self.local_date(fetched).isoformat() == self.today()

    # -- persistence ------------------------------------------------------

    def _reset(self) -> None:
        self._movies = {}
        self._sessions = {}
        self._upcoming = {}
        self.movies_updated_at = None

    def load(self) -> None:
        self._reset()
        data = self._cache.get_json(self._key)
        if data is None:
            self._logger.info("store_load_empty key=%s", self._key)
            return
        if not isinstance(data, dict):
            self._logger.warning("store_load_corrupt key=%s type=%s reinitializing", self._key, type(data).__name__)
            return

        skipped = 0
        for movie_id, raw in _mapping(data.get("movies")).items():
            try:
                self._movies[str(movie_id)] = MovieRecord.from_dict(raw)
            except Exception:
                skipped += 1

        for day, by_source in _mapping(data.get("sessions")).items():
            if not isinstance(by_source, dict):
                skipped += 1
                continue
            for source_id, raw_env in by_source.items():
                envelope = self._parse_envelope(raw_env, SessionRecord.from_dict)
                if envelope is None:
                    skipped += 1
                    continue
                self._sessions.setdefault(str(day), {})[str(source_id)] = envelope

        for source_id, raw_env in _mapping(data.get("upcoming")).items():
            envelope = self._parse_envelope(raw_env, UpcomingMovie.from_dict)
            if envelope is None:
                skipped += 1
                continue
            self._upcoming[str(source_id)] = envelope

        updated_at = data.get("movies_updated_at")
        self.movies_updated_at = str(updated_at) if updated_at else None
        if skipped:
            self._logger.warning("store_load_skipped_records key=%s skipped=%s", self._key, skipped)
        self._logger.info(
            "store_load_hit key=%s movies=%s session_days=%s upcoming_sources=%s",
            self._key,
            len(self._movies),
            len(self._sessions),
            len(self._upcoming),
        )

    def _parse_envelope(self, raw, item_factory) -> Optional[CacheEnvelope]:
        if not isinstance(raw, dict) or not raw.get("fetched_at"):
            return None
        try:
            items = [item_factory(item) for item in raw.get("items") or []]
        except Exception:
            return None
        return CacheEnvelope(fetched_at=str(raw["fetched_at"]), items=items)

    def to_dict(self) -> dict:
        def envelope_dict(envelope: CacheEnvelope) -> dict:
            return {
                "fetched_at": envelope.fetched_at,
                "items": [item.to_dict() for item in envelope.items],
            }

        return {
            "movies": {movie_id: movie.to_dict() for movie_id, movie in self._movies.items()},
            "sessions": {
                day: {source_id: envelope_dict(env) for source_id, env in by_source.items()}
                for day, by_source in self._sessions.items()
            },
            "upcoming": {source_id: envelope_dict(env) for source_id, env in self._upcoming.items()},
            "movies_updated_at": self.movies_updated_at,
        }

    def save(self) -> bool:
        saved = self._cache.set_json(self._key, self.to_dict())
        if not saved:
            self._logger.warning("store_save_failed key=%s continuing_in_memory", self._key)
        return saved

    # -- movies -----------------------------------------------------------

    def merge_movies(self, records: Iterable[MovieRecord]) -> int:
        """Add movies not stored yet. Existing records are never replaced."""
        added = 0
        for movie in records:
            if movie.id not in self._movies:
                self._movies[movie.id] = movie
                added += 1
        if added > 0:
            self.movies_updated_at = self._clock().isoformat()
            self._logger.info("store_movies_merged added=%s total=%s", added, len(self._movies))
        return added

    def get_movie(self, movie_id: str) -> Optional[MovieRecord]:
        return self._movies.get(movie_id)

    def get_all_movies(self) -> dict[str, MovieRecord]:
        return dict(self._movies)

    # -- sessions ---------------------------------------------------------

    def set_sessions(self, day: str, source_id: str, records: Iterable[SessionRecord], fetched_at: str) -> None:
        items = list(records)
        self._sessions.setdefault(day, {})[source_id] = CacheEnvelope(fetched_at=fetched_at, items=items)
        self.purge_old_sessions()
        self.save()
        self._logger.info("store_sessions_set day=%s source_id=%s sessions=%s", day, source_id, len(items))

    def get_sessions(self, day: str, source_id: str) -> Optional[CacheEnvelope]:
        envelope = self._sessions.get(day, {}).get(source_id)
        if envelope is None:
            self._logger.info("store_sessions_miss day=%s source_id=%s", day, source_id)
            return None
        if not self._is_fresh(envelope):
            self._logger.info(
                "store_sessions_expired day=%s source_id=%s fetched_at=%s today=%s",
                day,
                source_id,
                envelope.fetched_at,
                self.today(),
            )
            del self._sessions[day][source_id]
            if not self._sessions[day]:
                del self._sessions[day]
            return None
        self._logger.info("store_sessions_hit day=%s source_id=%s", day, source_id)
        return envelope

    def purge_old_sessions(self) -> int:
        today = self.today()
        stale = [day for day in self._sessions if day < today]
        for day in stale:
            del self._sessions[day]
        if stale:
            self._logger.info("store_sessions_purged days=%s today=%s", ",".join(sorted(stale)), today)
        return len(stale)

    # -- upcoming ---------------------------------------------------------

    def set_upcoming(self, source_id: str, items: Iterable[UpcomingMovie], fetched_at: str) -> None:
        items = list(items)
        self._upcoming[source_id] = CacheEnvelope(fetched_at=fetched_at, items=items)
        self.save()
        self._logger.info("store_upcoming_set source_id=%s items=%s", source_id, len(items))

    def get_upcoming(self, source_id: str) -> Optional[CacheEnvelope]:
        envelope = self._upcoming.get(source_id)
        if envelope is None:
            return None
        if not self._is_fresh(envelope):
            self._logger.info(
                "store_upcoming_expired source_id=%s fetched_at=%s today=%s",
                source_id,
                envelope.fetched_at,
                self.today(),
            )
            del self._upcoming[source_id]
            return None
        self._logger.info("store_upcoming_hit source_id=%s", source_id)
        return envelope
