"""Boundary to the upstream data provider.

The HTTP client lives outside this package; anything that can hand back
ingresso.com ``groupBy/sessionType`` payloads satisfies
:class:`ShowtimesSource`.
"""

import json
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Protocol


class SourceError(RuntimeError):
    pass


class ShowtimesSource(Protocol):
    def fetch_day(self, source_id: str, day: str) -> Any:
        """Raw sessions payload of ``source_id`` for ``day`` (YYYY-MM-DD)."""
        ...

    def fetch_future_days(self, source_id: str, after_day: str, days_ahead: int) -> list[dict]:
        """Day payloads after ``after_day``, in chronological order."""
        ...


def _day_object(payload: Any) -> Any:
    if isinstance(payload, list):
        return payload[0] if payload else {}
    return payload


class DirectorySource:
    """Reads payloads dumped by an external fetcher.

    Layout: ``<root>/<source_id>/<YYYY-MM-DD>.json``.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._logger = logging.getLogger(__name__)

    def path_for(self, source_id: str, day: str) -> Path:
        return self._root / source_id / f"{day}.json"

    def _read(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text("utf-8"))
        except FileNotFoundError as exc:
            raise SourceError(f"no payload at {path}") from exc
        except (OSError, ValueError) as exc:
            raise SourceError(f"unreadable payload at {path}: {exc}") from exc

    def fetch_day(self, source_id: str, day: str) -> Any:
        path = self.path_for(source_id, day)
        payload = self._read(path)
        self._logger.info("source_day_read source_id=%s day=%s path=%s", source_id, day, path)
        return payload

    def fetch_future_days(self, source_id: str, after_day: str, days_ahead: int) -> list[dict]:
        start = date.fromisoformat(after_day)
        groups: list[dict] = []
        for offset in range(1, days_ahead + 1):
            day = (start + timedelta(days=offset)).isoformat()
            path = self.path_for(source_id, day)
            if not path.exists():
                continue
            try:
                group = _day_object(self._read(path))
            except SourceError:
                self._logger.warning("source_future_day_skipped source_id=%s day=%s", source_id, day, exc_info=True)
                continue
            if isinstance(group, dict):
                groups.append({"date": day, **group})
        self._logger.info(
            "source_future_days_read source_id=%s after=%s days_ahead=%s found=%s",
            source_id,
            after_day,
            days_ahead,
            len(groups),
        )
        return groups
