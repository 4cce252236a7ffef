import json
import logging
from pathlib import Path
from typing import Any, Optional

import redis


class Cache:
    """Durable home for the JSON documents the stores keep between runs."""

    def get_json(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set_json(self, key: str, value: Any) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class NullCache(Cache):
    def get_json(self, key: str) -> Optional[Any]:
        return None

    def set_json(self, key: str, value: Any) -> bool:
        return False

    def delete(self, key: str) -> bool:
        return True

    def close(self) -> None:
        return None


class FileCache(Cache):
    def __init__(self, directory: Path, logger: logging.Logger) -> None:
        self._dir = Path(directory)
        self._logger = logger

    def path_for(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get_json(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            self._logger.info("cache_load_miss key=%s path=%s", key, path)
            return None
        try:
            return json.loads(path.read_text("utf-8"))
        except Exception:
            self._logger.warning("cache_get_failed key=%s path=%s", key, path, exc_info=True)
            return None

    def set_json(self, key: str, value: Any) -> bool:
        path = self.path_for(key)
        try:
            payload = json.dumps(value, ensure_ascii=False, indent=2)
            atomic_write_text(path, payload)
            return True
        except Exception:
            self._logger.warning("cache_set_failed key=%s path=%s", key, path, exc_info=True)
            return False

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
            return True
        except Exception:
            self._logger.warning("cache_delete_failed key=%s path=%s", key, path, exc_info=True)
            return False

    def close(self) -> None:
        return None


class RedisCache(Cache):
    # No TTL on keys: cached sessions expire at the venue's midnight, which
    # the stores check themselves.
    def __init__(self, redis_url: str, logger: logging.Logger, prefix: str = "cinesystem") -> None:
        self._logger = logger
        self._prefix = prefix
        self._client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        self._client.ping()

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(self._key(key))
            if raw is None:
                return None
            return json.loads(raw)
        except Exception:
            self._logger.warning("cache_get_failed key=%s", key, exc_info=True)
            return None

    def set_json(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False)
            self._client.set(self._key(key), payload)
            return True
        except Exception:
            self._logger.warning("cache_set_failed key=%s", key, exc_info=True)
            return False

    def delete(self, key: str) -> bool:
        try:
            self._client.delete(self._key(key))
            return True
        except Exception:
            self._logger.warning("cache_delete_failed key=%s", key, exc_info=True)
            return False

    def close(self) -> None:
        try:
            self._client.close()
        except Exception:
            self._logger.debug("cache_close_failed", exc_info=True)


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding=encoding)
    tmp.replace(path)


def build_cache(config, logger: logging.Logger) -> Cache:
    backend = getattr(config, "cache_backend", "file")
    if backend == "none":
        logger.info("cache_disabled")
        return NullCache()

    if backend == "redis":
        redis_url = getattr(config, "redis_url", None)
        if not redis_url:
            logger.warning("cache_backend_redis_but_no_redis_url using NullCache")
            return NullCache()
        try:
            logger.info("cache_enabled backend=redis redis_url=%s", redis_url)
            return RedisCache(redis_url, logger, getattr(config, "redis_key_prefix", "cinesystem"))
        except Exception:
            logger.warning("cache_init_failed using NullCache", exc_info=True)
            return NullCache()

    data_dir = Path(getattr(config, "data_dir", "./data"))
    logger.info("cache_enabled backend=file dir=%s", data_dir)
    return FileCache(data_dir, logger)
