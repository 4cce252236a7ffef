"""Normalization of ingresso.com session payloads.

The sessions endpoint repeats the full movie catalog entry for every
theater and date it is queried with. Normalization splits that payload into
static movie records, which are stored once, and the per-day session
records, which are the only part that actually changes.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .models import (
    CompositeMovie,
    CompositeSession,
    MovieRecord,
    SessionRecord,
    Snapshot,
    SnapshotEntry,
    UpcomingMovie,
)

AUDIO_LABELS = frozenset({"Dublado", "Legendado"})
DEFAULT_FORMAT = "2D"


@dataclass(frozen=True)
class NormalizedPayload:
    movies: dict[str, MovieRecord] = field(default_factory=dict)
    sessions: list[SessionRecord] = field(default_factory=list)
    date: Optional[str] = None
    fetched_at: str = ""


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _opt_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return price if math.isfinite(price) else None


def _duration(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        minutes = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return minutes or None


def _image_url(images: list, kind: str) -> Optional[str]:
    for image in images:
        if isinstance(image, dict) and image.get("type") == kind:
            return _opt_str(image.get("url"))
    return None


def _tag_names(raw: dict) -> list[str]:
    tags = _as_list(raw.get("completeTags")) or _as_list(raw.get("tags"))
    names = []
    for tag in tags:
        name = tag.get("name") if isinstance(tag, dict) else tag
        if isinstance(name, str) and name:
            names.append(name)
    return names


def _session_types(session: dict) -> list[dict]:
    return [t for t in _as_list(session.get("types")) if isinstance(t, dict)]


def _is_audio(session_type: dict) -> bool:
    # labels arrive as loosely typed JSON; only strings can name an audio track
    name = session_type.get("name")
    return isinstance(name, str) and name in AUDIO_LABELS


def _classify(types: list[dict]) -> tuple[str, Optional[str]]:
    fmt = next((t.get("alias") for t in types if not _is_audio(t)), None)
    audio = next((t.get("alias") for t in types if _is_audio(t)), None)
    return (str(fmt) if fmt else DEFAULT_FORMAT), _opt_str(audio)


def _iter_sessions(groups: Any) -> Iterable[dict]:
    for group in _as_list(groups):
        for session in _as_list(_as_dict(group).get("sessions")):
            if isinstance(session, dict):
                yield session


def extract_movie_static(raw: Any) -> Optional[MovieRecord]:
    """Build a :class:`MovieRecord` from a raw API movie.

    Every optional field falls back to a default. Returns ``None`` only when
    the movie carries no usable id.
    """
    raw = _as_dict(raw)
    movie_id = _opt_id(raw.get("id"))
    if movie_id is None:
        return None

    images = _as_list(raw.get("images"))
    trailers = _as_list(raw.get("trailers"))
    trailer = _opt_str(_as_dict(trailers[0]).get("url")) if trailers else None

    return MovieRecord(
        id=movie_id,
        title=str(raw.get("title") or ""),
        original_title=_opt_str(raw.get("originalTitle")),
        url_key=_opt_str(raw.get("urlKey")),
        duration=_duration(raw.get("duration")),
        content_rating=_opt_str(raw.get("contentRating")),
        rating_color=_opt_str(_as_dict(raw.get("ratingDetails")).get("color")),
        genres=[str(g) for g in _as_list(raw.get("genres")) if g],
        distributor=_opt_str(raw.get("distributor")),
        poster=_image_url(images, "PosterPortrait"),
        backdrop=_image_url(images, "PosterHorizontal"),
        trailer=trailer,
        tags=_tag_names(raw),
        is_reexhibition=bool(raw.get("isReexhibition") or False),
        in_pre_sale=bool(raw.get("inPreSale") or False),
    )


def extract_sessions(movie_id: str, session_types: Any) -> list[SessionRecord]:
    """Flatten the per-format/per-audio session groups of one movie."""
    sessions: list[SessionRecord] = []
    seen: set[str] = set()
    for raw in _iter_sessions(session_types):
        session_id = _opt_id(raw.get("id"))
        if session_id is None or session_id in seen:
            continue
        seen.add(session_id)
        fmt, audio = _classify(_session_types(raw))
        sessions.append(
            SessionRecord(
                id=session_id,
                movie_id=movie_id,
                time=str(raw.get("time") or ""),
                price=_price(raw.get("price")),
                room=_opt_str(raw.get("room")),
                format=fmt,
                audio=audio,
                checkout_url=_opt_str(raw.get("siteURL")),
            )
        )
    return sessions


def normalize_sessions_response(payload: Any, now: Optional[datetime] = None) -> NormalizedPayload:
    """Split a ``groupBy/sessionType`` response into movies and sessions.

    The endpoint answers either with the day object itself or with a list
    whose first element is the day object.
    """
    logger = logging.getLogger(__name__)
    fetched_at = (now or datetime.now(timezone.utc)).isoformat()
    data = payload[0] if isinstance(payload, list) and payload else payload
    data = _as_dict(data)

    raw_movies = data.get("movies")
    if not isinstance(raw_movies, list):
        logger.warning("normalize_payload_without_movies keys=%s", sorted(data.keys()))
        return NormalizedPayload(fetched_at=fetched_at)

    movies: dict[str, MovieRecord] = {}
    sessions: list[SessionRecord] = []
    seen_sessions: set[str] = set()
    dropped = 0
    for raw_movie in raw_movies:
        movie = extract_movie_static(raw_movie)
        if movie is None:
            dropped += 1
            continue
        movies.setdefault(movie.id, movie)
        for session in extract_sessions(movie.id, raw_movie.get("sessionTypes")):
            if session.id in seen_sessions:
                continue
            seen_sessions.add(session.id)
            sessions.append(session)

    logger.debug(
        "normalize_done movies=%s sessions=%s dropped_movies=%s date=%s",
        len(movies),
        len(sessions),
        dropped,
        data.get("date"),
    )
    return NormalizedPayload(
        movies=movies,
        sessions=sessions,
        date=_opt_str(data.get("date")),
        fetched_at=fetched_at,
    )


def normalize_upcoming_from_sessions(future_dates: Iterable[Any], today_movie_ids: set[str]) -> list[UpcomingMovie]:
    """Movies of future dates that are not showing today.

    ``future_dates`` must be in chronological order; each movie is recorded
    once, with the data of the first date it appears on.
    """
    seen: dict[str, UpcomingMovie] = {}
    for date_entry in future_dates:
        date_entry = _as_dict(date_entry)
        for raw in _as_list(date_entry.get("movies")):
            raw = _as_dict(raw)
            movie_id = _opt_id(raw.get("id"))
            if movie_id is None or movie_id in today_movie_ids or movie_id in seen:
                continue

            formats: list[str] = []
            min_price: Optional[float] = None
            groups = raw.get("sessionTypes") or raw.get("rooms") or []
            for session in _iter_sessions(groups):
                for t in _session_types(session):
                    alias = t.get("alias")
                    if not _is_audio(t) and alias and str(alias) not in formats:
                        formats.append(str(alias))
                price = _price(session.get("price"))
                if price and (min_price is None or price < min_price):
                    min_price = price

            seen[movie_id] = UpcomingMovie(
                id=movie_id,
                title=str(raw.get("title") or ""),
                content_rating=_opt_str(raw.get("contentRating")),
                genres=[str(g) for g in _as_list(raw.get("genres")) if g],
                poster=_image_url(_as_list(raw.get("images")), "PosterPortrait"),
                in_pre_sale=bool(raw.get("inPreSale") or False),
                formats=formats,
                price_from=min_price,
                first_date=_opt_str(date_entry.get("date")),
                first_date_formatted=_opt_str(date_entry.get("dateFormatted")),
                first_date_day_of_week=_opt_str(date_entry.get("dayOfWeek")),
                site_url=_opt_str(raw.get("siteURLByTheater") or raw.get("siteURL")),
            )
    return list(seen.values())


def denormalize(movies: dict[str, MovieRecord], sessions: Iterable[SessionRecord]) -> list[CompositeMovie]:
    """Rebuild the ``[{name, sessions}]`` view consumers expect.

    Movies without sessions are left out; sessions whose movie is unknown
    are skipped.
    """
    grouped: dict[str, CompositeMovie] = {}
    for session in sessions:
        entry = grouped.get(session.movie_id)
        if entry is None:
            movie = movies.get(session.movie_id)
            if movie is None:
                continue
            entry = grouped[session.movie_id] = CompositeMovie(movie=movie)

        entry.sessions.append(
            CompositeSession(
                time=session.time,
                session_id=session.id,
                price=session.price,
                half_price=round(session.price / 2, 2) if session.price is not None else None,
                is_free=session.price is None,
                room=session.room,
                format=session.format,
                audio=session.audio,
            )
        )
    return list(grouped.values())


def build_snapshot(composite: Iterable[CompositeMovie], scraped_at: str) -> Snapshot:
    entries = []
    for movie in composite:
        times = list(dict.fromkeys(s.time for s in movie.sessions if s.time))
        entries.append(SnapshotEntry(name=movie.name, sessions=times))
    return Snapshot(movies=entries, scraped_at=scraped_at)
