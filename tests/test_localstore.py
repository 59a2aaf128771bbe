import sqlite3
from unittest import mock

import pytest

from fakes import make_note, millis
from notebridge import helpers
from notebridge.sync.model.localstore import SqliteLocalStore
from notebridge.sync.model.note import Attachment

DAY = 24 * 60 * 60 * 1000


class TestSqliteLocalStore:

    @staticmethod
    def store(tmp_path) -> SqliteLocalStore:
        return SqliteLocalStore(tmp_path / 'NoteBridge.db')

    def test_seed_tables(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        success, data = store.seed_tables()
        assert success is True
        assert (tmp_path / 'NoteBridge.db').exists()

    def test_seed_tables_fail(self, tmp_path):
        with pytest.raises(sqlite3.OperationalError):
            SqliteLocalStore(tmp_path)

    def test_upsert_and_get(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        note = make_note('n1', millis(2024, 1, 1), 100, 'A', asset_ids=['a1'])
        note.extra = {'pinned': True}
        store.upsert(note)
        assert store.get_note('n1') == note
        assert store.get_note('missing') is None

        # Upsert keeps updated_at as given
        note.content = 'B'
        note.updated_at = 50
        store.upsert(note)
        assert store.get_note('n1').content == 'B'
        assert store.get_note('n1').updated_at == 50
        assert len(store.list_all()) == 1

    def test_list_all_includes_trash(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        store.upsert(make_note('n1', millis(2024, 1, 1), 1))
        store.upsert(make_note('n2', millis(2024, 2, 1), 1, is_deleted=True))
        assert [note.id for note in store.list_all()] == ['n2', 'n1']

    def test_add_note(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        note = store.add_note('# Hello', asset_ids=['a1'], tags=['work'])
        stored = store.get_note(note.id)
        assert stored.content == '# Hello'
        assert stored.timestamp == stored.updated_at
        assert stored.created_at is not None
        assert stored.tags == ['work']
        assert stored.asset_ids == ['a1']

    def test_update_note_content(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        store.upsert(make_note('n1', millis(2024, 1, 1), 100, 'A'))
        with mock.patch.object(helpers, 'now_ms', return_value=500):
            note = store.update_note_content('n1', 'B')
        assert note.updated_at == 500
        assert store.get_note('n1').content == 'B'
        assert store.update_note_content('missing', 'B') is None

    def test_soft_delete_and_restore(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        store.upsert(make_note('n1', millis(2024, 1, 1), 100, 'A'))

        with mock.patch.object(helpers, 'now_ms', return_value=200):
            store.soft_delete_note('n1')
        note = store.get_note('n1')
        assert note.is_deleted is True
        assert note.deleted_at == 200
        assert note.updated_at == 200

        with mock.patch.object(helpers, 'now_ms', return_value=300):
            store.restore_note('n1')
        note = store.get_note('n1')
        assert note.is_deleted is False
        assert note.deleted_at is None
        assert note.updated_at == 300

        assert store.soft_delete_note('missing') is None
        assert store.restore_note('missing') is None

    def test_hard_delete_note(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        store.write_asset('shared', b'1')
        store.write_asset('own', b'2')
        store.mark_asset_synced('own')
        store.upsert(make_note('n1', millis(2024, 1, 1), 1, asset_ids=['shared', 'own']))
        store.upsert(make_note('n2', millis(2024, 1, 1), 1, asset_ids=['shared']))

        store.hard_delete_note('n1')
        assert store.get_note('n1') is None
        assert store.asset_exists('shared') is True
        assert store.asset_exists('own') is False
        assert store.is_asset_synced('own') is False
        assert store.list_deletions() == ['own']

        # Unknown note is ignored
        store.hard_delete_note('n1')

    def test_cleanup_trash(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        now = helpers.now_ms()
        old = make_note('old', millis(2024, 1, 1), now - 40 * DAY, is_deleted=True)
        old.deleted_at = now - 40 * DAY
        recent = make_note('recent', millis(2024, 1, 1), now - DAY, is_deleted=True)
        recent.deleted_at = now - DAY
        store.upsert(old)
        store.upsert(recent)
        store.upsert(make_note('live', millis(2024, 1, 1), now - 40 * DAY))

        assert store.cleanup_trash() == ['old']
        assert sorted(note.id for note in store.list_all()) == ['live', 'recent']

        assert store.cleanup_trash(retention_days=0) == ['recent']

    def test_empty_trash(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        store.upsert(make_note('n1', millis(2024, 1, 1), 1, is_deleted=True))
        store.upsert(make_note('n2', millis(2024, 1, 1), 1))
        assert store.empty_trash() == ['n1']
        assert [note.id for note in store.list_all()] == ['n2']

    def test_assets(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        assert store.asset_exists('a1') is False
        assert store.read_asset('a1') is None

        store.write_asset('a1', b'\x89PNG', 'image/png')
        asset = store.read_asset('a1')
        assert asset.data == b'\x89PNG'
        assert asset.mime_type == 'image/png'
        assert store.is_asset_synced('a1') is False

        store.mark_asset_synced('a1')
        store.mark_asset_synced('a1')
        assert store.is_asset_synced('a1') is True

        asset_id = store.add_asset(b'data')
        assert store.read_asset(asset_id).mime_type == Attachment.DEFAULT_MIME_TYPE

    def test_delete_asset(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        store.write_asset('a1', b'data')
        store.mark_asset_synced('a1')
        store.delete_asset('a1')
        assert store.asset_exists('a1') is False
        assert store.is_asset_synced('a1') is False
        assert store.list_deletions() == ['a1']

    def test_deletion_queue(self, tmp_path):
        store = TestSqliteLocalStore.store(tmp_path)
        with mock.patch.object(helpers, 'now_ms', side_effect=[1, 2, 3]):
            store.enqueue_deletion('b')
            store.enqueue_deletion('a')
            store.enqueue_deletion('b')
        assert store.list_deletions() == ['b', 'a']

        store.remove_deletion('b')
        assert store.list_deletions() == ['a']
        store.remove_deletion('missing')
