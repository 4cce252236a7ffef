import math
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


@dataclass(frozen=True)
class MovieRecord:
    """Catalog data for one movie; identical for every date and theater."""

    id: str
    title: str
    original_title: Optional[str] = None
    url_key: Optional[str] = None
    duration: Optional[int] = None       # minutes
    content_rating: Optional[str] = None
    rating_color: Optional[str] = None
    genres: list[str] = field(default_factory=list)
    distributor: Optional[str] = None
    poster: Optional[str] = None
    backdrop: Optional[str] = None
    trailer: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    is_reexhibition: bool = False
    in_pre_sale: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MovieRecord":
        duration = data.get("duration")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            original_title=_str_or_none(data.get("original_title")),
            url_key=_str_or_none(data.get("url_key")),
            duration=duration if isinstance(duration, int) and not isinstance(duration, bool) else None,
            content_rating=_str_or_none(data.get("content_rating")),
            rating_color=_str_or_none(data.get("rating_color")),
            genres=_str_list(data.get("genres")),
            distributor=_str_or_none(data.get("distributor")),
            poster=_str_or_none(data.get("poster")),
            backdrop=_str_or_none(data.get("backdrop")),
            trailer=_str_or_none(data.get("trailer")),
            tags=_str_list(data.get("tags")),
            is_reexhibition=bool(data.get("is_reexhibition", False)),
            in_pre_sale=bool(data.get("in_pre_sale", False)),
        )


@dataclass(frozen=True)
class SessionRecord:
    """One showtime of a movie on one day at one theater."""

    id: str
    movie_id: str
    time: str
    price: Optional[float] = None        # None means a free session
    room: Optional[str] = None
    format: str = "2D"
    audio: Optional[str] = None
    checkout_url: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        return cls(
            id=str(data["id"]),
            movie_id=str(data["movie_id"]),
            time=str(data.get("time") or ""),
            price=_float_or_none(data.get("price")),
            room=_str_or_none(data.get("room")),
            format=str(data.get("format") or "2D"),
            audio=_str_or_none(data.get("audio")),
            checkout_url=_str_or_none(data.get("checkout_url")),
        )


@dataclass(frozen=True)
class UpcomingMovie:
    id: str
    title: str
    content_rating: Optional[str] = None
    genres: list[str] = field(default_factory=list)
    poster: Optional[str] = None
    in_pre_sale: bool = False
    formats: list[str] = field(default_factory=list)
    price_from: Optional[float] = None
    first_date: Optional[str] = None
    first_date_formatted: Optional[str] = None
    first_date_day_of_week: Optional[str] = None
    site_url: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UpcomingMovie":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            content_rating=_str_or_none(data.get("content_rating")),
            genres=_str_list(data.get("genres")),
            poster=_str_or_none(data.get("poster")),
            in_pre_sale=bool(data.get("in_pre_sale", False)),
            formats=_str_list(data.get("formats")),
            price_from=_float_or_none(data.get("price_from")),
            first_date=_str_or_none(data.get("first_date")),
            first_date_formatted=_str_or_none(data.get("first_date_formatted")),
            first_date_day_of_week=_str_or_none(data.get("first_date_day_of_week")),
            site_url=_str_or_none(data.get("site_url")),
        )


@dataclass(frozen=True)
class CacheEnvelope:
    fetched_at: str      # ISO timestamp of the upstream fetch
    items: list = field(default_factory=list)


@dataclass(frozen=True)
class CompositeSession:
    time: str
    session_id: str
    price: Optional[float]
    half_price: Optional[float]
    is_free: bool
    room: Optional[str]
    format: str
    audio: Optional[str]


@dataclass(frozen=True)
class CompositeMovie:
    movie: MovieRecord
    sessions: list[CompositeSession] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.movie.title

    def to_dict(self) -> dict:
        data = self.movie.to_dict()
        data["name"] = self.name
        data["sessions"] = [asdict(s) for s in self.sessions]
        return data


@dataclass(frozen=True)
class SnapshotEntry:
    name: str
    sessions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Snapshot:
    movies: list[SnapshotEntry] = field(default_factory=list)
    scraped_at: str = ""

    def to_dict(self) -> dict:
        return {
            "movies": [{"name": m.name, "sessions": list(m.sessions)} for m in self.movies],
            "scraped_at": self.scraped_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Snapshot":
        entries = []
        for raw in data.get("movies") or []:
            if not isinstance(raw, dict) or raw.get("name") is None:
                continue
            entries.append(SnapshotEntry(name=str(raw["name"]), sessions=_str_list(raw.get("sessions"))))
        return cls(movies=entries, scraped_at=str(data.get("scraped_at") or ""))


@dataclass(frozen=True)
class SessionChange:
    movie: str
    times: list[str]


@dataclass(frozen=True)
class ChangeReport:
    added_movies: list[str] = field(default_factory=list)
    removed_movies: list[str] = field(default_factory=list)
    added_sessions: list[SessionChange] = field(default_factory=list)
    removed_sessions: list[SessionChange] = field(default_factory=list)
    summary: str = ""

    @property
    def has_changes(self) -> bool:
        return bool(
            self.added_movies
            or self.removed_movies
            or self.added_sessions
            or self.removed_sessions
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["has_changes"] = self.has_changes
        return data
