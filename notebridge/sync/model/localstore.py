"""
Contains the ``LocalStore`` interface, which is everything the sync engine needs from on-device storage, and
``SqliteLocalStore``, the SQLite implementation used by the application.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import List

from notebridge import helpers
from notebridge.helpers import DateUtil
from notebridge.sync.model.note import Attachment, Note


class LocalStore(ABC):
    """
    Abstract interface to the local note and attachment storage.
    """

    @abstractmethod
    def list_all(self) -> List[Note]:
        """Get every note, including notes in the trash."""

    @abstractmethod
    def get_note(self, note_id: str) -> Note | None:
        """Get a note by ID, or ``None`` if it does not exist."""

    @abstractmethod
    def upsert(self, note: Note) -> None:
        """Insert or replace a note, keeping its ``updated_at`` as given."""

    @abstractmethod
    def asset_exists(self, asset_id: str) -> bool:
        """Check whether the payload of an attachment is stored locally."""

    @abstractmethod
    def read_asset(self, asset_id: str) -> Attachment | None:
        """Get an attachment, or ``None`` if it is not stored locally."""

    @abstractmethod
    def write_asset(self, asset_id: str, data: bytes, mime_type: str = Attachment.DEFAULT_MIME_TYPE) -> None:
        """Store the payload of an attachment."""

    @abstractmethod
    def is_asset_synced(self, asset_id: str) -> bool:
        """Check whether the remote copy of an attachment is known to match the local one."""

    @abstractmethod
    def mark_asset_synced(self, asset_id: str) -> None:
        """Record that the remote copy of an attachment matches the local one."""

    @abstractmethod
    def enqueue_deletion(self, asset_id: str) -> None:
        """Queue an attachment for remote deletion."""

    @abstractmethod
    def list_deletions(self) -> List[str]:
        """Get the IDs of attachments queued for remote deletion, oldest first."""

    @abstractmethod
    def remove_deletion(self, asset_id: str) -> None:
        """Remove an attachment from the remote deletion queue."""


class SqliteLocalStore(LocalStore):
    """
    Stores notes, attachments and sync bookkeeping in a SQLite database. Each note is stored as its full JSON record,
    next to the columns needed to query it.
    """

    #: Number of days a note stays in the trash before ``cleanup_trash()`` erases it.
    TRASH_RETENTION_DAYS: int = 30

    def __init__(self, db_path: Path | str | None = None):
        """
        Create a new SQLite store. The tables are created if they do not exist yet.

        :param db_path: path to the database file. Defaults to the application's database.
        """
        self.db_path: Path | str = db_path if db_path is not None else helpers.db_folder()
        success, data = self.seed_tables()
        if not success:
            raise sqlite3.OperationalError(data)

    def connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        return connection

    def seed_tables(self) -> tuple[bool, str]:
        """
        Creates the initial structure for the tables storing notes, attachments and the sync state in SQLite.

        :returns:

            -success (:py:class:`bool`) - true if tables are successfully created.

            -data (:py:class:`str`) - error message on failure, or success message.

        """
        try:
            with closing(self.connect()) as connection:
                with closing(connection.cursor()) as cursor:
                    cursor.execute("""CREATE TABLE IF NOT EXISTS tb_note (
                                    id TEXT PRIMARY KEY,
                                    timestamp INTEGER NOT NULL,
                                    updated_at INTEGER,
                                    is_deleted INTEGER NOT NULL DEFAULT 0,
                                    deleted_at INTEGER,
                                    record TEXT NOT NULL
                                    );""")
                    cursor.execute("CREATE INDEX IF NOT EXISTS idx_note_timestamp ON tb_note(timestamp)")
                    cursor.execute("""CREATE TABLE IF NOT EXISTS tb_asset (
                                    id TEXT PRIMARY KEY,
                                    data BLOB NOT NULL,
                                    mime_type TEXT,
                                    created_at INTEGER
                                    );""")
                    cursor.execute("CREATE TABLE IF NOT EXISTS tb_synced_asset (id TEXT PRIMARY KEY);")
                    cursor.execute("""CREATE TABLE IF NOT EXISTS tb_deleted_asset (
                                    id TEXT PRIMARY KEY,
                                    queued_at INTEGER
                                    );""")
                    connection.commit()
        except sqlite3.OperationalError as e:
            return False, repr(e)
        return True, 'NoteBridge tables created'

    # Notes

    def list_all(self) -> List[Note]:
        with closing(self.connect()) as connection:
            rows = connection.execute("SELECT record FROM tb_note ORDER BY timestamp DESC").fetchall()
        return [Note.create_from_dict(json.loads(row['record'])) for row in rows]

    def get_note(self, note_id: str) -> Note | None:
        with closing(self.connect()) as connection:
            row = connection.execute("SELECT record FROM tb_note WHERE id = ?", (note_id,)).fetchone()
        return Note.create_from_dict(json.loads(row['record'])) if row else None

    def upsert(self, note: Note) -> None:
        with closing(self.connect()) as connection:
            connection.execute("""INSERT OR REPLACE INTO tb_note(id, timestamp, updated_at, is_deleted, deleted_at, record)
                                VALUES (?, ?, ?, ?, ?, ?)""",
                               (note.id, note.timestamp, note.updated_at, int(note.is_deleted), note.deleted_at,
                                json.dumps(note.to_dict(), ensure_ascii=False)))
            connection.commit()

    def add_note(self, content: str, asset_ids: List[str] | None = None, tags: List[str] | None = None) -> Note:
        """
        Create a new note.

        :param content: the markdown body of the note.
        :param asset_ids: IDs of attachments referenced by the note.
        :param tags: tags of the note.
        :return: the new note.
        """
        now = helpers.now_ms()
        note = Note(
            id=helpers.get_uuid(),
            content=content,
            timestamp=now,
            updated_at=now,
            created_at=DateUtil.convert('', datetime.now(), DateUtil.DISPLAY_DATETIME),
            tags=tags,
            asset_ids=asset_ids)
        self.upsert(note)
        return note

    def update_note_content(self, note_id: str, content: str) -> Note | None:
        note = self.get_note(note_id)
        if note is None:
            return None
        note.content = content
        note.updated_at = helpers.now_ms()
        self.upsert(note)
        return note

    def soft_delete_note(self, note_id: str) -> Note | None:
        """
        Move a note to the trash. The note is kept as a tombstone so the deletion reaches other devices.

        :param note_id: ID of the note.
        :return: the updated note, or ``None`` if it does not exist.
        """
        note = self.get_note(note_id)
        if note is None:
            return None
        now = helpers.now_ms()
        note.is_deleted = True
        note.deleted_at = now
        note.updated_at = now
        self.upsert(note)
        return note

    def restore_note(self, note_id: str) -> Note | None:
        note = self.get_note(note_id)
        if note is None:
            return None
        note.is_deleted = False
        note.deleted_at = None
        note.updated_at = helpers.now_ms()
        self.upsert(note)
        return note

    def hard_delete_note(self, note_id: str) -> None:
        """
        Erase a note and its attachments. Attachments which are not referenced by another note are deleted locally and
        queued for remote deletion.

        :param note_id: ID of the note.
        """
        note = self.get_note(note_id)
        if note is None:
            return
        with closing(self.connect()) as connection:
            connection.execute("DELETE FROM tb_note WHERE id = ?", (note_id,))
            connection.commit()

        still_used = {asset_id for other in self.list_all() for asset_id in other.asset_ids}
        for asset_id in note.asset_ids:
            if asset_id not in still_used:
                self.delete_asset(asset_id)

    def cleanup_trash(self, retention_days: int = TRASH_RETENTION_DAYS) -> List[str]:
        """
        Erase notes which have been in the trash for longer than the retention window.

        :param retention_days: number of days a note stays in the trash.
        :return: IDs of the erased notes.
        """
        cutoff = helpers.now_ms() - retention_days * 24 * 60 * 60 * 1000
        with closing(self.connect()) as connection:
            rows = connection.execute("SELECT id FROM tb_note WHERE is_deleted = 1 AND deleted_at IS NOT NULL "
                                      "AND deleted_at < ?", (cutoff,)).fetchall()
        erased = [row['id'] for row in rows]
        for note_id in erased:
            self.hard_delete_note(note_id)
        logging.debug('Erased {} notes from the trash'.format(len(erased)))
        return erased

    def empty_trash(self) -> List[str]:
        """
        Erase every note in the trash.

        :return: IDs of the erased notes.
        """
        with closing(self.connect()) as connection:
            rows = connection.execute("SELECT id FROM tb_note WHERE is_deleted = 1").fetchall()
        erased = [row['id'] for row in rows]
        for note_id in erased:
            self.hard_delete_note(note_id)
        return erased

    # Attachments

    def asset_exists(self, asset_id: str) -> bool:
        with closing(self.connect()) as connection:
            row = connection.execute("SELECT 1 FROM tb_asset WHERE id = ?", (asset_id,)).fetchone()
        return row is not None

    def read_asset(self, asset_id: str) -> Attachment | None:
        with closing(self.connect()) as connection:
            row = connection.execute("SELECT * FROM tb_asset WHERE id = ?", (asset_id,)).fetchone()
        if row is None:
            return None
        return Attachment(row['id'], bytes(row['data']), row['mime_type'], row['created_at'])

    def write_asset(self, asset_id: str, data: bytes, mime_type: str = Attachment.DEFAULT_MIME_TYPE) -> None:
        with closing(self.connect()) as connection:
            connection.execute("INSERT OR REPLACE INTO tb_asset(id, data, mime_type, created_at) VALUES (?, ?, ?, ?)",
                               (asset_id, sqlite3.Binary(data), mime_type, helpers.now_ms()))
            connection.commit()

    def add_asset(self, data: bytes, mime_type: str = Attachment.DEFAULT_MIME_TYPE) -> str:
        """
        Store a new attachment created on this device.

        :param data: the binary payload.
        :param mime_type: the media type of the payload.
        :return: the ID of the new attachment.
        """
        asset_id = helpers.get_uuid()
        self.write_asset(asset_id, data, mime_type)
        return asset_id

    def delete_asset(self, asset_id: str) -> None:
        """
        Delete an attachment locally and queue its remote copy for deletion.

        :param asset_id: ID of the attachment.
        """
        with closing(self.connect()) as connection:
            connection.execute("DELETE FROM tb_asset WHERE id = ?", (asset_id,))
            connection.execute("DELETE FROM tb_synced_asset WHERE id = ?", (asset_id,))
            connection.commit()
        self.enqueue_deletion(asset_id)

    def is_asset_synced(self, asset_id: str) -> bool:
        with closing(self.connect()) as connection:
            row = connection.execute("SELECT 1 FROM tb_synced_asset WHERE id = ?", (asset_id,)).fetchone()
        return row is not None

    def mark_asset_synced(self, asset_id: str) -> None:
        with closing(self.connect()) as connection:
            connection.execute("INSERT OR IGNORE INTO tb_synced_asset(id) VALUES (?)", (asset_id,))
            connection.commit()

    # Remote deletion queue

    def enqueue_deletion(self, asset_id: str) -> None:
        with closing(self.connect()) as connection:
            connection.execute("INSERT OR IGNORE INTO tb_deleted_asset(id, queued_at) VALUES (?, ?)",
                               (asset_id, helpers.now_ms()))
            connection.commit()

    def list_deletions(self) -> List[str]:
        with closing(self.connect()) as connection:
            rows = connection.execute("SELECT id FROM tb_deleted_asset ORDER BY queued_at, id").fetchall()
        return [row['id'] for row in rows]

    def remove_deletion(self, asset_id: str) -> None:
        with closing(self.connect()) as connection:
            connection.execute("DELETE FROM tb_deleted_asset WHERE id = ?", (asset_id,))
            connection.commit()
