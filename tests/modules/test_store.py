"""Tests for keel.modules.store.SqlConfigVersionStore."""

import pytest
from sqlalchemy import inspect

from keel.core.orm import ConfigRecord, ConfigType
from keel.modules.store import ConfigVersionStore, SqlConfigVersionStore


class TestSqlConfigVersionStore:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, ConfigVersionStore)

    def test_sync_creates_table_once(self, store, connection):
        assert store.fetch_latest([ConfigType.CONFIG]) == {}
        assert store.history() == []
        assert store.sync() is True
        assert store.sync() is False
        assert "__keel_config" in connection.table_names()

    def test_fetch_latest_per_type(self, store):
        store.sync()
        store.insert_many(
            [
                ConfigRecord(version=1, type=ConfigType.CONFIG, json={"v": 1}),
                ConfigRecord(version=2, type=ConfigType.CONFIG, json={"v": 2}),
                ConfigRecord(version=1, type=ConfigType.SECRETS, json={"auth.jwt.secret": "x"}),
                ConfigRecord(version=2, type=ConfigType.BACKUP, json={"v": 1}),
            ]
        )
        latest = store.fetch_latest([ConfigType.CONFIG, ConfigType.SECRETS])

        assert set(latest) == {ConfigType.CONFIG, ConfigType.SECRETS}
        assert latest[ConfigType.CONFIG].json == {"v": 2}
        assert latest[ConfigType.SECRETS].version == 1

    def test_update_by_id(self, store):
        store.sync()
        record = store.insert(ConfigRecord(version=3, type=ConfigType.CONFIG, json={"a": 1}))
        store.update_by_id(record.id, json={"a": 2})
        assert store.fetch_latest([ConfigType.CONFIG])[ConfigType.CONFIG].json == {"a": 2}

    def test_update_unknown_id(self, store):
        store.sync()
        with pytest.raises(LookupError):
            store.update_by_id(999, json={})

    def test_history_filters(self, store):
        store.sync()
        store.insert_many(
            [
                ConfigRecord(version=3, type=ConfigType.CONFIG, json={}),
                ConfigRecord(version=3, type=ConfigType.DIFF, json=[]),
                ConfigRecord(version=2, type=ConfigType.BACKUP, json={}),
            ]
        )
        assert [r.type for r in store.history()] == [ConfigType.BACKUP, ConfigType.DIFF, ConfigType.CONFIG]
        assert [r.type for r in store.history([ConfigType.DIFF])] == [ConfigType.DIFF]
        assert [r.type for r in store.history(version=2)] == [ConfigType.BACKUP]

    def test_record_to_dict(self, store):
        store.sync()
        record = store.insert(ConfigRecord(version=3, type=ConfigType.DIFF, json=[{"t": "a", "p": ["x"], "n": 1}]))
        data = record.to_dict()
        assert data["type"] == "diff"
        assert data["version"] == 3
        assert data["created_at"] is not None

    def test_records_stay_loaded_after_session_closes(self, store):
        store.sync()
        inserted = store.insert_many(
            [
                ConfigRecord(version=1, type=ConfigType.CONFIG, json={"v": 1}),
                ConfigRecord(version=1, type=ConfigType.SECRETS, json={}),
            ]
        )
        latest = store.fetch_latest([ConfigType.CONFIG])[ConfigType.CONFIG]

        for record in [*inserted, latest]:
            assert not inspect(record).expired_attributes
        assert [r.type for r in inserted] == [ConfigType.CONFIG, ConfigType.SECRETS]
        assert latest.id == inserted[0].id
        assert latest.json == {"v": 1}

    def test_transaction_rolls_back_every_write(self, store):
        store.sync()
        config = store.insert(ConfigRecord(version=1, type=ConfigType.CONFIG, json={"v": 1}))

        with pytest.raises(LookupError):
            with store.transaction():
                store.insert(ConfigRecord(version=1, type=ConfigType.DIFF, json=[]))
                store.update_by_id(config.id, json={"v": 2})
                store.update_by_id(999, json={})

        assert [r.type for r in store.history()] == [ConfigType.CONFIG]
        assert store.fetch_latest([ConfigType.CONFIG])[ConfigType.CONFIG].json == {"v": 1}

    def test_nested_transaction_joins_outer(self, store):
        store.sync()
        with store.transaction():
            with store.transaction():
                store.insert(ConfigRecord(version=1, type=ConfigType.CONFIG, json={}))
            store.insert(ConfigRecord(version=1, type=ConfigType.SECRETS, json={}))
        assert len(store.history()) == 2
