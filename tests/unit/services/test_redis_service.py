import pytest

from fathom.constants import DatabaseEngine
from fathom.services.database_metrics.redis_service import RedisMetricsService


@pytest.fixture
def redis(app, make_database):
    return make_database(DatabaseEngine.REDIS, uuid="redis-0001")


@pytest.mark.unit
def test_collect_metrics_reads_info(redis, transport) -> None:
    transport.when(
        "INFO",
        "used_memory_human:1.5M\ndb0:keys=42,expires=0\ninstantaneous_ops_per_sec:17\n"
        "keyspace_hits:75\nkeyspace_misses:25\n",
    )
    metrics = RedisMetricsService(transport).collect_metrics(redis.server, redis)

    assert metrics == {"totalKeys": 42, "memoryUsed": "1.5M", "opsPerSec": 17, "hitRate": "75.0%"}
    assert transport.commands[0] == (
        "docker exec redis-0001 redis-cli -a redis-secret --no-auth-warning INFO 2>/dev/null"
    )


@pytest.mark.unit
def test_collect_metrics_without_traffic_has_no_hit_rate(redis, transport) -> None:
    transport.when("INFO", "keyspace_hits:0\nkeyspace_misses:0\n")
    metrics = RedisMetricsService(transport).collect_metrics(redis.server, redis)
    assert metrics["hitRate"] is None
    assert metrics["memoryUsed"] == "N/A"


@pytest.mark.unit
def test_keydb_uses_its_own_password(app, make_database, transport) -> None:
    keydb = make_database(DatabaseEngine.KEYDB, uuid="keydb-0001")
    RedisMetricsService(transport).collect_metrics(keydb.server, keydb)
    assert "-a keydb-secret" in transport.commands[0]


@pytest.mark.unit
def test_get_keys_describes_each_key(redis, transport) -> None:
    transport.when("KEYS", "session:1\ncounter\n")
    transport.when("TYPE session:1", "string").when("TTL session:1", "3600").when("MEMORY USAGE session:1", "56")
    transport.when("TYPE counter", "string").when("TTL counter", "-1")

    keys = RedisMetricsService(transport).get_keys(redis.server, redis, "*", 10)

    assert keys == [
        {"name": "session:1", "type": "string", "ttl": "1h", "size": "56 B"},
        {"name": "counter", "type": "string", "ttl": "none", "size": "N/A"},
    ]
    assert transport.commands[0].endswith("KEYS '*' 2>/dev/null | head -n 10")


@pytest.mark.unit
def test_get_key_value_by_type(redis, transport) -> None:
    transport.when("TYPE user:1", "hash").when("TTL user:1", "-1").when("HLEN", "2")
    transport.when("HGETALL", "name\nann\nrole\nadmin\n")
    transport.when("TYPE board", "zset").when("TTL board", "120").when("ZCARD", "2")
    transport.when("ZRANGE", "alice\n10\nbob\n20\n")
    service = RedisMetricsService(transport)

    assert service.get_key_value(redis.server, redis, "user:1") == {
        "success": True,
        "key": "user:1",
        "type": "hash",
        "value": {"name": "ann", "role": "admin"},
        "length": 2,
        "ttl": -1,
    }
    board = service.get_key_value(redis.server, redis, "board")
    assert board["value"] == [{"member": "alice", "score": "10"}, {"member": "bob", "score": "20"}]
    assert board["ttl"] == 120


@pytest.mark.unit
def test_get_key_value_missing_key(redis, transport) -> None:
    assert RedisMetricsService(transport).get_key_value(redis.server, redis, "ghost") == {
        "success": False,
        "error": "Key not found",
    }


@pytest.mark.unit
def test_set_list_value_recreates_key_and_sets_ttl(redis, transport) -> None:
    transport.when("RPUSH", "2")
    result = RedisMetricsService(transport).set_key_value(redis.server, redis, "queue", "list", ["a", "b"], ttl=60)

    assert result == {"success": True, "message": "Key 'queue' updated successfully"}
    assert transport.ran("DEL queue")
    assert transport.ran("RPUSH queue a b 2>&1")
    assert transport.ran("EXPIRE queue 60")


@pytest.mark.unit
def test_set_key_value_edge_cases(redis, transport) -> None:
    service = RedisMetricsService(transport)
    transport.when("SET greeting", "ERR syntax error")

    assert service.set_key_value(redis.server, redis, "tags", "set", []) == {
        "success": True,
        "message": "Empty set created",
    }
    assert service.set_key_value(redis.server, redis, "greeting", "string", "hi")["success"] is False
    assert service.set_key_value(redis.server, redis, "events", "stream", "x") == {
        "success": False,
        "error": "Unsupported key type",
    }
    assert not transport.ran("EXPIRE")


@pytest.mark.unit
def test_delete_key(redis, transport) -> None:
    transport.when("DEL present", "1").when("DEL gone", "0")
    service = RedisMetricsService(transport)

    assert service.delete_key(redis.server, redis, "present") == {"success": True, "message": "Key 'present' deleted"}
    assert service.delete_key(redis.server, redis, "gone")["success"] is False


@pytest.mark.unit
def test_memory_info_without_limit(redis, transport) -> None:
    transport.when("INFO memory", "used_memory_human:2M\nused_memory_peak_human:3M\nmem_fragmentation_ratio:1.2\n")
    transport.when("CONFIG GET", "maxmemory\n0\nmaxmemory-policy\nnoeviction\n")

    assert RedisMetricsService(transport).get_memory_info(redis.server, redis) == {
        "usedMemory": "2M",
        "peakMemory": "3M",
        "fragmentationRatio": "1.2",
        "maxMemory": "No limit",
        "evictionPolicy": "noeviction",
    }


@pytest.mark.unit
def test_persistence_settings(redis, transport) -> None:
    transport.when("GET save", "save\n900 1 300 10\n").when("GET appendonly", "appendonly\nyes\n")
    transport.when("GET appendfsync", "appendfsync\nalways\n")
    transport.when("INFO persistence", "rdb_last_save_time:0\nrdb_last_bgsave_status:ok\n")

    assert RedisMetricsService(transport).get_persistence_settings(redis.server, redis) == {
        "rdbEnabled": True,
        "rdbSaveRules": [{"seconds": 900, "changes": 1}, {"seconds": 300, "changes": 10}],
        "aofEnabled": True,
        "aofFsync": "always",
        "rdbLastSaveTime": None,
        "rdbLastBgsaveStatus": "ok",
    }


@pytest.mark.unit
def test_flush(redis, transport) -> None:
    transport.when("FLUSHALL", "OK")
    service = RedisMetricsService(transport)

    assert service.flush(redis.server, redis, "all") == {"success": True, "message": "All databases flushed"}
    assert service.flush(redis.server, redis, "db") == {"success": False, "error": "Flush command failed"}
    assert transport.ran("FLUSHDB")
