import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from .models import CompositeMovie, UpcomingMovie
from .normalize import denormalize, normalize_sessions_response, normalize_upcoming_from_sessions
from .sources import ShowtimesSource
from .store import NormalizedStore


@dataclass(frozen=True)
class DayListing:
    date: str
    movies: list[CompositeMovie] = field(default_factory=list)
    from_cache: bool = False


class ShowtimesService:
    """Serves listings from the normalized cache, fetching on a miss."""

    def __init__(
        self,
        store: NormalizedStore,
        source: ShowtimesSource,
        source_id: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.source = source
        self.source_id = source_id
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def day_offset(self, days: int) -> str:
        return (date.fromisoformat(self.store.today()) + timedelta(days=days)).isoformat()

    def movies_for_date(self, day: Optional[str] = None, force: bool = False) -> DayListing:
        target = day or self.store.today()

        if not force:
            cached = self.store.get_sessions(target, self.source_id)
            if cached is not None:
                movies = denormalize(self.store.get_all_movies(), cached.items)
                return DayListing(date=target, movies=movies, from_cache=True)

        payload = self.source.fetch_day(self.source_id, target)
        normalized = normalize_sessions_response(payload, now=self._clock())
        if normalized.date and normalized.date != target:
            self._logger.warning("listing_date_mismatch requested=%s payload=%s", target, normalized.date)
        listing_date = normalized.date or target

        self.store.merge_movies(normalized.movies.values())
        self.store.set_sessions(listing_date, self.source_id, normalized.sessions, normalized.fetched_at)
        movies = denormalize(normalized.movies, normalized.sessions)
        self._logger.info(
            "listing_fetched date=%s movies=%s sessions=%s force=%s",
            listing_date,
            len(movies),
            len(normalized.sessions),
            force,
        )
        return DayListing(date=listing_date, movies=movies, from_cache=False)

    def upcoming(self, days_ahead: int, force: bool = False) -> list[UpcomingMovie]:
        if not force:
            cached = self.store.get_upcoming(self.source_id)
            if cached is not None:
                return list(cached.items)

        today = self.store.today()
        today_ids = {m.movie.id for m in self.movies_for_date(today).movies}
        groups = self.source.fetch_future_days(self.source_id, today, days_ahead)
        groups.sort(key=lambda g: str(g.get("date") or ""))
        items = normalize_upcoming_from_sessions(groups, today_ids)
        self.store.set_upcoming(self.source_id, items, self._clock().isoformat())
        self._logger.info("upcoming_fetched days=%s items=%s", len(groups), len(items))
        return items
