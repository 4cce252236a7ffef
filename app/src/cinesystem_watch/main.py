import json
import logging
import os
from datetime import datetime, timezone
from time import perf_counter
from zoneinfo import ZoneInfo

from .cache import Cache, build_cache
from .changes import detect_changes
from .config import Config, ConfigError, load_config
from .logging_utils import new_run_id, set_run_id, setup_logging
from .normalize import build_snapshot
from .service import ShowtimesService
from .sources import DirectorySource
from .state import SnapshotStore
from .store import NormalizedStore


def resolve_date(cfg: Config, service: ShowtimesService) -> str:
    if cfg.date_mode == "fixed":
        if not cfg.fixed_date:
            raise ConfigError("DATE_MODE=fixed but FIXED_DATE is empty")
        return cfg.fixed_date
    if cfg.date_mode == "tomorrow":
        return service.day_offset(1)
    return service.day_offset(0)


def _write_status(cfg: Config, payload: dict, logger: logging.Logger) -> None:
    try:
        (cfg.data_dir / "status.json").write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            "utf-8",
        )
    except Exception:
        logger.exception("status_write_failed")


def run_showtimes_job(
    cfg: Config,
    logger: logging.Logger,
    service: ShowtimesService,
    snapshots: SnapshotStore,
) -> dict:
    date_str = resolve_date(cfg, service)

    listing = service.movies_for_date(date_str)
    scraped_at = datetime.now(timezone.utc).isoformat()
    snapshot = build_snapshot(listing.movies, scraped_at)

    rotated = snapshots.rotate(snapshot)
    # a failed rotation leaves the last stored listing in "current"
    previous = snapshots.load_previous() if rotated else snapshots.load_current()
    report = detect_changes(previous, snapshot)
    logger.info(
        "diff date=%s from_cache=%s rotated=%s has_changes=%s summary=%s",
        listing.date,
        listing.from_cache,
        rotated,
        report.has_changes,
        report.summary,
    )

    result = {
        "date": listing.date,
        "from_cache": listing.from_cache,
        "movies_found": len(listing.movies),
        "sessions_found": sum(len(m.sessions) for m in listing.movies),
        "upcoming_found": 0,
        "snapshot_rotated": rotated,
        "changes": report.to_dict(),
    }

    # a failure here must not lose the change report
    if cfg.upcoming_enabled:
        try:
            result["upcoming_found"] = len(service.upcoming(cfg.upcoming_max_days_ahead))
        except Exception as exc:
            logger.warning("upcoming_failed days_ahead=%s", cfg.upcoming_max_days_ahead, exc_info=True)
            result["upcoming_error"] = {"type": type(exc).__name__, "message": str(exc)}
    return result


def main() -> None:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    logger = logging.getLogger(__name__)

    cfg = load_config()
    tz = ZoneInfo(cfg.timezone)
    logger.info(
        "config timezone=%s theater_id=%s cache_backend=%s data_dir=%s payload_dir=%s",
        cfg.timezone,
        cfg.theater_id,
        cfg.cache_backend,
        cfg.data_dir,
        cfg.payload_dir,
    )

    run_id = new_run_id()
    set_run_id(run_id)

    cache: Cache = build_cache(cfg, logger)
    try:
        store = NormalizedStore(cache, cfg.timezone)
        store.load()
        service = ShowtimesService(store, DirectorySource(cfg.payload_dir), cfg.source_id)
        snapshots = SnapshotStore(cache)

        job_started = datetime.now(tz)
        logger.info("showtimes_job_start run_at=%s", job_started.isoformat())
        start_ts = perf_counter()
        status = "ok"
        error = None
        result: dict = {}
        try:
            result = run_showtimes_job(cfg, logger, service, snapshots)
        except Exception as exc:
            status = "error"
            error = {"message": str(exc)}
            logger.exception("showtimes_job_failed")

        payload = {
            "run_id": run_id,
            "status": status,
            "started_at": job_started.isoformat(),
            "finished_at": datetime.now(tz).isoformat(),
            "duration_seconds": perf_counter() - start_ts,
            **result,
        }
        if error:
            payload["error"] = error
        _write_status(cfg, payload, logger)
        logger.info("showtimes_job_end status=%s", status)
    finally:
        try:
            cache.close()
        except Exception:
            logger.debug("cache_close_failed", exc_info=True)


if __name__ == "__main__":
    main()
