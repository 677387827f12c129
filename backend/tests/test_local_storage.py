# Overview: Pytest coverage for SQL-backed durable storage and the CLI maintenance commands.

import json

import pytest

from conftest import FakeRemote, TEST_BCRYPT_ROUNDS
from shopos import create_app
from shopos.services.local_storage import QUEUE_KEY, STATE_KEY, MemoryKeyValueStorage, SqlKeyValueStorage
from shopos.services.operations import OperationType
from shopos.services.sync_queue import OperationQueue


@pytest.fixture
def sql_app():
    app = create_app(
        overrides={
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SYNC_SCHEDULER_ENABLED': False,
            'BACKGROUND_TASKS_INLINE': True,
            'BCRYPT_ROUNDS': TEST_BCRYPT_ROUNDS,
            'START_ONLINE': False,
        },
        remote=FakeRemote(),
    )
    yield app
    app.extensions["shopos"].shutdown()


class TestMemoryStorage:
    def test_get_set_delete(self):
        storage = MemoryKeyValueStorage({"a": "1"})

        storage.set("b", "2")
        storage.delete("a")
        storage.delete("missing")

        assert storage.get("a") is None
        assert storage.get("b") == "2"
        assert storage.keys() == ["b"]


class TestSqlStorage:
    def test_runtime_uses_sql_storage_by_default(self, sql_app):
        assert isinstance(sql_app.extensions["shopos"].storage, SqlKeyValueStorage)

    def test_set_overwrites_and_delete(self, sql_app):
        storage = SqlKeyValueStorage(sql_app)

        storage.set("k", "one")
        storage.set("k", "two")
        assert storage.get("k") == "two"

        storage.delete("k")
        assert storage.get("k") is None
        storage.delete("k")

    def test_queue_survives_new_storage_handle(self, sql_app):
        queue = OperationQueue(SqlKeyValueStorage(sql_app))
        queue.enqueue(OperationType.CREATE_PRODUCT, {"id": "p1"}, "p1")

        reopened = OperationQueue(SqlKeyValueStorage(sql_app))

        assert [op.target_entity_id for op in reopened.peek_all()] == ["p1"]
        raw = json.loads(SqlKeyValueStorage(sql_app).get(QUEUE_KEY))
        assert raw["operations"][0]["type"] == "CREATE_PRODUCT"

    def test_entries_lists_keys(self, sql_app):
        storage = SqlKeyValueStorage(sql_app)
        storage.set(STATE_KEY, "{}")

        keys = [entry["key"] for entry in storage.entries()]
        assert STATE_KEY in keys
        assert all("size" in entry for entry in storage.entries())


class TestCli:
    def test_sync_status(self, sql_app):
        result = sql_app.test_cli_runner().invoke(args=["sync", "status"])

        assert result.exit_code == 0
        assert "pending" in result.output
        assert "online" in result.output

    def test_drain_refuses_when_not_eligible(self, sql_app):
        result = sql_app.test_cli_runner().invoke(args=["sync", "drain"])

        assert result.exit_code == 0
        assert "not sync-eligible" in result.output

    def test_dropped_listing_and_clear(self, sql_app):
        queue = sql_app.extensions["shopos"].queue
        queue.max_retries = 1
        operation = queue.enqueue(OperationType.CREATE_PRODUCT, {"id": "p1"}, "p1")
        queue.mark_failed(operation.id, error="boom")
        runner = sql_app.test_cli_runner()

        listed = runner.invoke(args=["sync", "dropped"])
        assert "CREATE_PRODUCT" in listed.output
        assert "boom" in listed.output

        cleared = runner.invoke(args=["sync", "clear-dropped"])
        assert "Cleared 1" in cleared.output
        assert runner.invoke(args=["sync", "dropped"]).output.strip() == "No dropped operations"

    def test_local_reset(self, sql_app):
        runtime = sql_app.extensions["shopos"]
        runtime.queue.enqueue(OperationType.CREATE_PRODUCT, {"id": "p1"}, "p1")

        aborted = sql_app.test_cli_runner().invoke(args=["local", "reset"], input="n\n")
        assert aborted.exit_code != 0
        assert runtime.queue.count() == 1

        result = sql_app.test_cli_runner().invoke(args=["local", "reset", "--yes"])
        assert result.exit_code == 0
        assert runtime.queue.count() == 0
        assert runtime.state.shop_id is None
