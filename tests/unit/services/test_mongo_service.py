import pytest

from fathom.constants import DatabaseEngine
from fathom.services.database_metrics.base import TableDataQuery
from fathom.services.database_metrics.mongo_service import MongoMetricsService, infer_mongo_type, js_literal

OBJECT_ID = "65a1b2c3d4e5f60718293a4b"


@pytest.fixture
def mongo(app, make_database):
    return make_database(DatabaseEngine.MONGODB, uuid="mongo-0001")


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ({"$oid": OBJECT_ID}, "ObjectId"),
        ({"$date": "2024-01-01T00:00:00Z"}, "Date"),
        ({"a": 1}, "Object"),
        ([1, 2], "Array"),
        (True, "Boolean"),
        (3, "Int"),
        (1.5, "Double"),
        ("x", "String"),
        (None, "Null"),
    ],
)
def test_infer_mongo_type(value, expected: str) -> None:
    assert infer_mongo_type(value) == expected


@pytest.mark.unit
def test_js_literal_escapes_quotes() -> None:
    assert js_literal('say "hi"') == '"say \\"hi\\""'


@pytest.mark.unit
def test_collect_metrics_authenticates_against_admin(mongo, transport) -> None:
    transport.when("db.stats()", '{"collections": 3, "objects": 1200, "dataSize": 2048, "indexSize": 1024}')
    metrics = MongoMetricsService(transport).collect_metrics(mongo.server, mongo)

    assert metrics == {"collections": 3, "documents": 1200, "databaseSize": "2 KB", "indexSize": "1 KB"}
    assert transport.commands[0].startswith(
        "docker exec mongo-0001 mongosh -u root -p mongo-secret --authenticationDatabase admin admin --quiet --eval "
    )


@pytest.mark.unit
def test_collect_metrics_tolerates_non_json(mongo, transport) -> None:
    transport.default = "MongoServerError: Authentication failed."
    metrics = MongoMetricsService(transport).collect_metrics(mongo.server, mongo)
    assert metrics["collections"] is None
    assert metrics["databaseSize"] == "N/A"


@pytest.mark.unit
def test_get_columns_infers_types(mongo, transport) -> None:
    transport.when("findOne", f'{{"_id": {{"$oid": "{OBJECT_ID}"}}, "name": "ann", "age": 30, "tags": ["a"]}}')
    columns = MongoMetricsService(transport).get_columns(mongo.server, mongo, "people")

    assert [(column["name"], column["type"]) for column in columns] == [
        ("_id", "ObjectId"),
        ("name", "String"),
        ("age", "Int"),
        ("tags", "Array"),
    ]
    assert columns[0]["is_primary"] is True
    assert columns[1]["nullable"] is True


@pytest.mark.unit
def test_get_columns_on_empty_collection(mongo, transport) -> None:
    transport.when("findOne", "{}")
    assert MongoMetricsService(transport).get_columns(mongo.server, mongo, "people") == [
        {"name": "_id", "type": "ObjectId", "nullable": False, "default": None, "is_primary": True},
    ]


@pytest.mark.unit
def test_get_data_unwraps_extended_json(mongo, transport) -> None:
    columns = [
        {"name": "_id", "type": "ObjectId", "nullable": False, "default": None, "is_primary": True},
        {"name": "name", "type": "String", "nullable": True, "default": None, "is_primary": False},
        {"name": "meta", "type": "Object", "nullable": True, "default": None, "is_primary": False},
    ]
    transport.when("countDocuments", "2")
    transport.when(
        ".find(",
        f'[{{"_id": {{"$oid": "{OBJECT_ID}"}}, "name": "ann", "meta": {{"a": 1}}}}, {{"_id": {{"$oid": "{OBJECT_ID}"}}}}]',
    )
    query = TableDataQuery(search="ann", order_by="name", order_dir="desc")

    result = MongoMetricsService(transport).get_data(mongo.server, mongo, "people", query, columns)

    assert result["total"] == 2
    assert result["rows"] == [
        {"_id": OBJECT_ID, "name": "ann", "meta": '{"a": 1}'},
        {"_id": OBJECT_ID, "name": None, "meta": None},
    ]
    assert '$regex: "ann"' in transport.commands[-1]
    assert '.sort({"name": -1})' in transport.commands[-1]


@pytest.mark.unit
def test_create_row_handles_object_id(mongo, transport) -> None:
    transport.when("insertOne", f"{{ acknowledged: true, insertedId: ObjectId('{OBJECT_ID}') }}")
    service = MongoMetricsService(transport)

    assert service.create_row(mongo.server, mongo, "people", {"_id": "", "name": "ann"}) is True
    assert '"_id"' not in transport.commands[0]
    assert service.create_row(mongo.server, mongo, "people", {"_id": OBJECT_ID, "name": "bo"}) is True
    assert f'"_id": ObjectId("{OBJECT_ID}")' in transport.commands[1]


@pytest.mark.unit
def test_update_and_delete_rows_check_markers(mongo, transport) -> None:
    transport.when("updateOne", "{ acknowledged: true, matchedCount: 1, modifiedCount: 1 }")
    transport.when("deleteOne", "MongoServerError: not authorized on app to execute command")
    service = MongoMetricsService(transport)
    primary_key = {"_id": OBJECT_ID}

    assert service.update_row(mongo.server, mongo, "people", primary_key, {"name": "bo"}) is True
    assert service.update_row(mongo.server, mongo, "people", primary_key, {"_id": OBJECT_ID}) is False
    assert service.delete_row(mongo.server, mongo, "people", primary_key) is False
    assert service.delete_row(mongo.server, mongo, "people", {}) is False


@pytest.mark.unit
def test_create_index(mongo, transport) -> None:
    transport.when("createIndex", "email_1")
    service = MongoMetricsService(transport)

    assert service.create_index(mongo.server, mongo, "users", {"email": 1}, unique=True) == {
        "success": True,
        "message": "Index created on users",
    }
    assert '.createIndex({"email": 1}, { unique: true })' in transport.commands[0]
    assert service.create_index(mongo.server, mongo, "bad name!", {"email": 1})["error"] == "Invalid collection name"
    assert service.create_index(mongo.server, mongo, "users", {})["error"] == "Invalid field specification"


@pytest.mark.unit
def test_replica_set_defaults_when_not_configured(mongo, transport) -> None:
    assert MongoMetricsService(transport).get_replica_set_status(mongo.server, mongo) == {
        "enabled": False,
        "name": None,
        "members": [],
    }


@pytest.mark.unit
def test_storage_settings_and_users(mongo, transport) -> None:
    transport.when(
        "serverStatus",
        '{"storageEngine": "wiredTiger", "cacheSize": null, "journalEnabled": true, "directoryPerDb": false}',
    )
    transport.when("getUsers", '[{"user": "root", "roles": "root"}, {"user": "app", "roles": ""}]')
    service = MongoMetricsService(transport)

    assert service.get_storage_settings(mongo.server, mongo) == {
        "storageEngine": "wiredTiger",
        "cacheSize": "Default (50% RAM)",
        "journalEnabled": True,
        "directoryPerDb": False,
    }
    assert service.get_users(mongo.server, mongo) == [
        {"name": "root", "role": "root", "connections": 0},
        {"name": "app", "role": "Standard", "connections": 0},
    ]
