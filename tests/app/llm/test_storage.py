from unittest.mock import MagicMock, patch

import pytest
import redis

from career_coach.app.llm.storage import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    RedisStore,
    StoreQuotaError,
    create_store,
)


def test_stores_satisfy_protocol(tmp_path):
    assert isinstance(MemoryStore(), KeyValueStore)
    assert isinstance(JsonFileStore(tmp_path), KeyValueStore)
    assert isinstance(RedisStore(MagicMock()), KeyValueStore)


def test_memory_store_basic_operations():
    store = MemoryStore()
    store.set_item("coach:cache:a", "1")
    store.set_item("other", "2")
    assert store.get_item("coach:cache:a") == "1"
    assert store.keys("coach:cache:") == ["coach:cache:a"]
    store.remove_item("coach:cache:a")
    store.remove_item("missing")
    assert store.get_item("coach:cache:a") is None


def test_memory_store_quota_counts_replacement_once():
    store = MemoryStore(quota_bytes=10)
    store.set_item("k", "12345")
    store.set_item("k", "123456789")
    with pytest.raises(StoreQuotaError):
        store.set_item("k2", "x")


def test_json_file_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path / "cache")
    assert store.keys() == []
    assert store.get_item("coach:cache:analysis:job:abc") is None

    store.set_item("coach:cache:analysis:job:abc", '{"data": 1}')
    store.set_item("coach:cache:research:company:xyz", "{}")

    assert store.get_item("coach:cache:analysis:job:abc") == '{"data": 1}'
    assert sorted(store.keys("coach:cache:")) == [
        "coach:cache:analysis:job:abc",
        "coach:cache:research:company:xyz",
    ]
    assert store.keys("coach:cache:research:") == ["coach:cache:research:company:xyz"]
    assert not list((tmp_path / "cache").glob("*.tmp"))


def test_json_file_store_remove(tmp_path):
    store = JsonFileStore(tmp_path)
    store.set_item("k", "v")
    store.remove_item("k")
    store.remove_item("k")
    assert store.get_item("k") is None


def test_redis_store_delegates_to_client():
    client = MagicMock()
    client.get.return_value = "value"
    client.scan_iter.return_value = iter(["coach:cache:a", "coach:cache:b"])
    store = RedisStore(client)

    assert store.get_item("coach:cache:a") == "value"
    store.set_item("coach:cache:a", "value")
    store.remove_item("coach:cache:a")

    client.set.assert_called_once_with("coach:cache:a", "value")
    client.delete.assert_called_once_with("coach:cache:a")
    assert store.keys("coach:cache:") == ["coach:cache:a", "coach:cache:b"]
    client.scan_iter.assert_called_once_with(match="coach:cache:*")


def test_redis_store_out_of_memory_is_quota_error():
    client = MagicMock()
    client.set.side_effect = redis.exceptions.ResponseError("OOM command not allowed")
    store = RedisStore(client)
    with pytest.raises(StoreQuotaError):
        store.set_item("k", "v")


def test_redis_store_other_response_errors_propagate():
    client = MagicMock()
    client.set.side_effect = redis.exceptions.ResponseError("WRONGTYPE")
    store = RedisStore(client)
    with pytest.raises(redis.exceptions.ResponseError):
        store.set_item("k", "v")


def test_redis_store_health_check():
    client = MagicMock()
    client.ping.return_value = True
    assert RedisStore(client).health_check() is True

    client.ping.side_effect = redis.exceptions.ConnectionError("down")
    assert RedisStore(client).health_check() is False


def test_redis_store_from_url():
    with patch("career_coach.app.llm.storage.redis.from_url") as mock_from_url:
        store = RedisStore.from_url("redis://example:6379/1")
    mock_from_url.assert_called_once_with("redis://example:6379/1", decode_responses=True)
    assert isinstance(store, RedisStore)


def test_create_store_kinds(tmp_path):
    assert isinstance(create_store("memory"), MemoryStore)
    assert isinstance(create_store("file", cache_dir=str(tmp_path)), JsonFileStore)
    with patch("career_coach.app.llm.storage.redis.from_url"):
        assert isinstance(create_store("redis", redis_url="redis://localhost"), RedisStore)


@pytest.mark.parametrize(
    "kind, kwargs, message",
    [
        ("file", {}, "cache directory is required"),
        ("redis", {}, "Redis URL is required"),
        ("sqlite", {}, "Invalid cache store: sqlite"),
    ],
)
def test_create_store_errors(kind, kwargs, message):
    with pytest.raises(ValueError, match=message):
        create_store(kind, **kwargs)
