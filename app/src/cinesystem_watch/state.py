import logging
from typing import Optional

from .cache import Cache
from .models import Snapshot

CURRENT = "state"
PREVIOUS = "previous"
SLOTS = (CURRENT, PREVIOUS)


class SnapshotStore:
    """Keeps the last two snapshots of the listing for diffing."""

    def __init__(self, cache: Cache) -> None:
        self._cache = cache
        self._logger = logging.getLogger(__name__)

    def load(self, slot: str) -> Optional[Snapshot]:
        """Read the snapshot stored in ``slot`` (``CURRENT`` or ``PREVIOUS``).

        Missing or malformed data gives ``None``. An unknown slot
        name is a programming error and raises ``ValueError``.
        """
        if slot not in SLOTS:
            raise ValueError(f"unknown snapshot slot: {slot}")
        raw = self._cache.get_json(slot)
        if raw is None:
            self._logger.info("snapshot_load_miss slot=%s", slot)
            return None
        if not isinstance(raw, dict):
            self._logger.warning("snapshot_load_invalid slot=%s type=%s", slot, type(raw).__name__)
            return None
        try:
            snapshot = Snapshot.from_dict(raw)
        except Exception:
            self._logger.warning("snapshot_load_failed slot=%s", slot, exc_info=True)
            return None
        self._logger.info("snapshot_load_hit slot=%s movies=%s scraped_at=%s", slot, len(snapshot.movies), snapshot.scraped_at)
        return snapshot

    def load_current(self) -> Optional[Snapshot]:
        return self.load(CURRENT)

    def load_previous(self) -> Optional[Snapshot]:
        return self.load(PREVIOUS)

    def rotate(self, snapshot: Snapshot) -> bool:
        """Move "current" to "previous" and store ``snapshot`` as current.

        Either both slots move or neither does: when the old current cannot
        be copied to previous, current is left untouched and ``False`` is
        returned. When there is no readable current, previous is cleared so
        it never holds a snapshot from two rotations back.
        """
        existing = self._cache.get_json(CURRENT)
        if existing is not None:
            if not self._cache.set_json(PREVIOUS, existing):
                self._logger.warning("snapshot_rotate_failed step=previous keeping_current=True")
                return False
        else:
            self._logger.info("snapshot_rotate_without_current")
            if not self._cache.delete(PREVIOUS):
                self._logger.warning("snapshot_rotate_failed step=clear_previous keeping_current=True")
                return False

        if not self._cache.set_json(CURRENT, snapshot.to_dict()):
            self._logger.warning("snapshot_rotate_failed step=current")
            return False
        self._logger.info(
            "snapshot_rotated movies=%s scraped_at=%s had_previous=%s",
            len(snapshot.movies),
            snapshot.scraped_at,
            existing is not None,
        )
        return True
