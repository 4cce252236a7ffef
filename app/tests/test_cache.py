import logging
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

from cinesystem_watch.cache import FileCache, NullCache, RedisCache, build_cache


class FileCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name) / "nested"
        self.cache = FileCache(self.dir, logging.getLogger("test"))

    def test_round_trip_and_miss(self) -> None:
        self.assertIsNone(self.cache.get_json("cache"))
        self.assertTrue(self.cache.set_json("cache", {"título": "Açaí", "n": [1, 2]}))
        self.assertEqual(self.cache.get_json("cache"), {"título": "Açaí", "n": [1, 2]})
        self.assertFalse((self.dir / "cache.json.tmp").exists())

    def test_write_failure_is_reported(self) -> None:
        self.dir.parent.mkdir(parents=True, exist_ok=True)
        self.dir.write_text("a file where the directory should be", "utf-8")
        with self.assertLogs("test", level="WARNING"):
            self.assertFalse(self.cache.set_json("cache", {}))

    def test_unserializable_value(self) -> None:
        with self.assertLogs("test", level="WARNING"):
            self.assertFalse(self.cache.set_json("cache", {"x": object()}))

    def test_delete(self) -> None:
        self.assertTrue(self.cache.delete("previous"))
        self.cache.set_json("previous", [1])
        self.assertTrue(self.cache.delete("previous"))
        self.assertIsNone(self.cache.get_json("previous"))


class RedisCacheTests(unittest.TestCase):
    def test_prefixed_keys_without_ttl(self) -> None:
        client = mock.MagicMock()
        client.get.return_value = '{"a": 1}'
        with mock.patch("cinesystem_watch.cache.redis.Redis.from_url", return_value=client) as from_url:
            cache = RedisCache("redis://localhost:6379/0", logging.getLogger("test"), prefix="cs")
        from_url.assert_called_once()
        client.ping.assert_called_once()

        self.assertEqual(cache.get_json("state"), {"a": 1})
        client.get.assert_called_with("cs:state")
        self.assertTrue(cache.set_json("state", {"b": 2}))
        client.set.assert_called_with("cs:state", '{"b": 2}')
        self.assertTrue(cache.delete("state"))
        client.delete.assert_called_with("cs:state")

    def test_errors_degrade(self) -> None:
        client = mock.MagicMock()
        client.get.side_effect = ConnectionError("down")
        client.set.side_effect = ConnectionError("down")
        client.delete.side_effect = ConnectionError("down")
        with mock.patch("cinesystem_watch.cache.redis.Redis.from_url", return_value=client):
            cache = RedisCache("redis://x", logging.getLogger("test"))
        with self.assertLogs("test", level="WARNING"):
            self.assertIsNone(cache.get_json("state"))
            self.assertFalse(cache.set_json("state", {}))
            self.assertFalse(cache.delete("state"))


class BuildCacheTests(unittest.TestCase):
    def test_backends(self) -> None:
        logger = logging.getLogger("test")
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg = SimpleNamespace(cache_backend="file", data_dir=Path(tmpdir), redis_url=None)
            self.assertIsInstance(build_cache(cfg, logger), FileCache)
        self.assertIsInstance(build_cache(SimpleNamespace(cache_backend="none"), logger), NullCache)
        self.assertIsInstance(build_cache(SimpleNamespace(cache_backend="redis", redis_url=None), logger), NullCache)

    def test_redis_failure_falls_back_to_null(self) -> None:
        cfg = SimpleNamespace(cache_backend="redis", redis_url="redis://nowhere:1/0", redis_key_prefix="cs")
        with mock.patch("cinesystem_watch.cache.redis.Redis.from_url", side_effect=OSError("refused")):
            self.assertIsInstance(build_cache(cfg, logging.getLogger("test")), NullCache)


if __name__ == "__main__":
    unittest.main()
