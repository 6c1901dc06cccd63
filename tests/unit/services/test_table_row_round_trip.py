"""
行写入后按主键读回的一致性测试

假传输层按引擎真实输出格式回放读取结果,校验写入命令携带原值、读取结果逐字段相等。
"""

import json
import shlex

import pytest

from fathom.constants import DatabaseEngine
from fathom.services.database_metrics.gateway import AdministrationGateway

ROW_VALUES = {"name": "a|b", "note": "x\ty", "memo": ""}
OBJECT_ID = "65a1b2c3d4e5f6a7b8c9d0e1"


@pytest.fixture
def gateway(make_user, transport):
    return AdministrationGateway(user=make_user(), transport=transport)


def _argument_after(command: str, flag: str) -> str:
    tokens = shlex.split(command)
    return tokens[tokens.index(flag) + 1]


def _command_with(transport, fragment: str) -> str:
    return next(command for command in transport.commands if fragment in command)


@pytest.mark.unit
def test_postgres_row_round_trip(gateway, make_database, transport) -> None:
    pg = make_database(DatabaseEngine.POSTGRESQL, uuid="pg-0001")
    row = {"id": 7, **ROW_VALUES}
    transport.when(
        "information_schema.columns",
        "id|integer|NO||1\nname|text|YES||0\nnote|text|YES||0\nmemo|text|YES||0\n",
    )
    transport.when("INSERT INTO", "INSERT 0 1")
    transport.when("SELECT COUNT(*)", "1")
    transport.when("row_to_json", json.dumps(row) + "\n")

    assert gateway.create_table_row(pg.uuid, "items", row) == (
        {"success": True, "message": "Row created successfully"},
        200,
    )
    payload, status = gateway.get_table_data(pg.uuid, "items", {"filters": {"id": 7}})

    assert status == 200
    assert payload["rows"] == [row]
    assert payload["pagination"]["total"] == 1
    insert_sql = _argument_after(_command_with(transport, "INSERT INTO"), "-c")
    assert insert_sql == 'INSERT INTO "items" ("id", "name", "note", "memo") VALUES (\'7\', \'a|b\', \'x\ty\', \'\')'
    read_sql = _argument_after(_command_with(transport, "row_to_json"), "-c")
    assert read_sql.startswith('SELECT row_to_json(t) FROM (SELECT * FROM "items" WHERE "id" = \'7\'')


@pytest.mark.unit
@pytest.mark.parametrize("engine", [DatabaseEngine.MYSQL, DatabaseEngine.MARIADB])
def test_mysql_row_round_trip(gateway, make_database, transport, engine) -> None:
    handle = make_database(engine, uuid=f"{engine}-0001")
    row = {"id": 7, **ROW_VALUES}
    transport.when(
        "INFORMATION_SCHEMA.COLUMNS",
        "id\tint\tNO\tNULL\t1\nname\tvarchar\tYES\tNULL\t0\nnote\tvarchar\tYES\tNULL\t0\nmemo\tvarchar\tYES\tNULL\t0\n",
    )
    transport.when("SELECT COUNT(*)", "1")
    transport.when("JSON_OBJECT", json.dumps(row) + "\n")

    assert gateway.create_table_row(handle.uuid, "items", row)[0]["success"] is True
    payload, _ = gateway.get_table_data(handle.uuid, "items", {"filters": {"id": 7}})

    assert payload["rows"] == [row]
    assert payload["pagination"]["total"] == 1
    insert_sql = _argument_after(_command_with(transport, "INSERT INTO"), "-e")
    assert insert_sql.endswith("VALUES ('7', 'a|b', 'x\ty', '')")
    read_command = _command_with(transport, "JSON_OBJECT")
    assert "--raw" in read_command
    assert "WHERE `id` = '7'" in _argument_after(read_command, "-e")


@pytest.mark.unit
def test_mongo_document_round_trip(gateway, make_database, transport) -> None:
    mongo = make_database(DatabaseEngine.MONGODB, uuid="mongo-0001")
    stored = {"_id": {"$oid": OBJECT_ID}, **ROW_VALUES}
    transport.when("findOne", json.dumps({"_id": {"$oid": OBJECT_ID}, "name": "seed", "note": "", "memo": ""}))
    transport.when("insertOne", f"{{ acknowledged: true, insertedId: ObjectId('{OBJECT_ID}') }}")
    transport.when("countDocuments", "1")
    transport.when(".toArray()", json.dumps([stored]))

    assert gateway.create_table_row(mongo.uuid, "items", ROW_VALUES)[0]["success"] is True
    payload, _ = gateway.get_table_data(mongo.uuid, "items", {"filters": {"_id": OBJECT_ID}})

    assert payload["rows"] == [{"_id": OBJECT_ID, **ROW_VALUES}]
    assert payload["pagination"]["total"] == 1
    insert_script = _argument_after(_command_with(transport, "insertOne"), "--eval")
    assert '"note": "x\\ty"' in insert_script
    assert '"memo": ""' in insert_script
    read_script = _argument_after(_command_with(transport, ".toArray()"), "--eval")
    assert f'find({{"_id": ObjectId("{OBJECT_ID}")}})' in read_script
