import logging
import re
from typing import Optional

from .models import ChangeReport, SessionChange, Snapshot


def _normalize_name(name: str) -> str:
    return re.sub(r"\s+", " ", name).strip().lower()


def _session_map(snapshot: Optional[Snapshot]) -> dict[str, tuple[str, list[str]]]:
    # normalized name -> (display name, unique session ids in listing order)
    if snapshot is None:
        return {}
    names: dict[str, str] = {}
    sessions: dict[str, dict[str, None]] = {}
    for entry in snapshot.movies:
        key = _normalize_name(entry.name)
        names.setdefault(key, entry.name)
        sessions.setdefault(key, {}).update(dict.fromkeys(entry.sessions))
    return {key: (names[key], list(sessions[key])) for key in names}


def _summary(report_parts: list[tuple[bool, str]]) -> str:
    parts = [text for present, text in report_parts if present]
    return ", ".join(parts) if parts else "No changes"


def detect_changes(previous: Optional[Snapshot], current: Optional[Snapshot]) -> ChangeReport:
    """Compare two snapshots of the listing.

    ``previous`` is ``None`` on the first run, which reports every current
    movie as added.
    """
    prev_map = _session_map(previous)
    cur_map = _session_map(current)

    added_movies = [name for key, (name, _) in cur_map.items() if key not in prev_map]
    removed_movies = [name for key, (name, _) in prev_map.items() if key not in cur_map]

    added_sessions: list[SessionChange] = []
    removed_sessions: list[SessionChange] = []
    for key, (name, cur_sessions) in cur_map.items():
        if key not in prev_map:
            continue
        prev_sessions = prev_map[key][1]
        prev_set, cur_set = set(prev_sessions), set(cur_sessions)
        added = [s for s in cur_sessions if s not in prev_set]
        removed = [s for s in prev_sessions if s not in cur_set]
        if added:
            added_sessions.append(SessionChange(movie=name, times=added))
        if removed:
            removed_sessions.append(SessionChange(movie=name, times=removed))

    summary = _summary(
        [
            (bool(added_movies), f"{len(added_movies)} new movie(s)"),
            (bool(removed_movies), f"{len(removed_movies)} removed movie(s)"),
            (bool(added_sessions), "sessions added"),
            (bool(removed_sessions), "sessions removed"),
        ]
    )
    report = ChangeReport(
        added_movies=added_movies,
        removed_movies=removed_movies,
        added_sessions=added_sessions,
        removed_sessions=removed_sessions,
        summary=summary,
    )
    logging.getLogger(__name__).debug(
        "changes_detected first_run=%s added_movies=%s removed_movies=%s added_sessions=%s removed_sessions=%s",
        previous is None,
        len(added_movies),
        len(removed_movies),
        len(added_sessions),
        len(removed_sessions),
    )
    return report
