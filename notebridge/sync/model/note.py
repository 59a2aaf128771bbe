"""
Contains the ``Note`` class, which represents a note (whether local or remote), and the ``Attachment`` class, which
represents a binary attachment referenced by a note.
"""

from __future__ import annotations

import copy
from typing import List

from notebridge.helpers import DateUtil
from notebridge.sync.model.errors import SerializationError


class Note:
    """
    Represents a note. Notes are stored locally in SQLite and remotely inside a weekly shard, both as the same JSON
    record, so a note can be created from and converted to a dictionary.
    """

    #: Keys of the JSON record understood by NoteBridge. Any other key is preserved untouched in ``extra``.
    KNOWN_KEYS = ('id', 'content', 'createdAt', 'timestamp', 'updatedAt', 'isDeleted', 'deletedAt', 'tags', 'assetIds')

    def __init__(self,
                 id: str,
                 content: str,
                 timestamp: int,
                 updated_at: int | None = None,
                 created_at: str | None = None,
                 is_deleted: bool = False,
                 deleted_at: int | None = None,
                 tags: List[str] | None = None,
                 asset_ids: List[str] | None = None,
                 extra: dict | None = None):
        """
        Create a new note.

        :param id: the globally unique ID of the note.
        :param content: the body of the note as markdown.
        :param timestamp: creation instant in epoch milliseconds. Never changes, and determines the note's shard.
        :param updated_at: last modification instant in epoch milliseconds, used for conflict resolution.
        :param created_at: human-readable creation date.
        :param is_deleted: true if the note is in the trash (tombstone).
        :param deleted_at: instant the note was moved to the trash in epoch milliseconds.
        :param tags: tags of this note.
        :param asset_ids: IDs of the attachments referenced by this note.
        :param extra: any other fields found in the record, kept so they survive a round trip.
        """
        self.id: str = id
        self.content: str = content
        self.timestamp: int = timestamp
        self.updated_at: int | None = updated_at
        self.created_at: str | None = created_at
        self.is_deleted: bool = is_deleted
        self.deleted_at: int | None = deleted_at
        self.tags: List[str] = tags if tags is not None else []
        self.asset_ids: List[str] = asset_ids if asset_ids is not None else []
        self.extra: dict = extra if extra is not None else {}

    @property
    def updated_or_zero(self) -> int:
        """
        The modification instant used for comparisons; a note which was never updated counts as 0.
        """
        return self.updated_at or 0

    @staticmethod
    def create_from_dict(record: dict) -> Note:
        """
        Creates a Note instance from a JSON record.

        :param record: the decoded JSON object.
        :return: a Note instance.
        :raises SerializationError: if the record is not an object, ``id`` or ``timestamp`` are missing or invalid, or
            ``isDeleted``, ``tags`` or ``assetIds`` have the wrong type.
        """
        if not isinstance(record, dict):
            raise SerializationError('Note record is not an object: {}'.format(record))
        note_id = record.get('id')
        timestamp = record.get('timestamp')
        if not isinstance(note_id, str) or not note_id:
            raise SerializationError('Note record has no id: {}'.format(record))
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise SerializationError('Note {} has no valid timestamp'.format(note_id))
        try:
            # Must map to a calendar date to have a shard
            DateUtil.from_millis(timestamp)
        except (ValueError, OverflowError, OSError) as e:
            raise SerializationError('Note {0} has an out-of-range timestamp {1}'.format(note_id, timestamp)) from e

        is_deleted = record.get('isDeleted')
        if is_deleted is not None and not isinstance(is_deleted, bool):
            raise SerializationError('Note {0} has an invalid isDeleted value {1!r}'.format(note_id, is_deleted))

        updated_at = record.get('updatedAt')
        deleted_at = record.get('deletedAt')
        return Note(
            id=note_id,
            content=record.get('content') or '',
            timestamp=int(timestamp),
            updated_at=Note._millis_or_none(updated_at),
            created_at=record.get('createdAt'),
            is_deleted=bool(is_deleted),
            deleted_at=Note._millis_or_none(deleted_at),
            tags=Note._string_list(record, 'tags', note_id),
            asset_ids=Note._string_list(record, 'assetIds', note_id),
            extra={k: copy.deepcopy(v) for k, v in record.items() if k not in Note.KNOWN_KEYS})

    @staticmethod
    def _millis_or_none(value) -> int | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)

    @staticmethod
    def _string_list(record: dict, key: str, note_id: str) -> List[str]:
        value = record.get(key)
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise SerializationError('Note {0} has an invalid {1} value {2!r}'.format(note_id, key, value))
        return list(value)

    def to_dict(self) -> dict:
        """
        Convert this note to its JSON record. Optional fields which are not set are left out.

        :return: the record as a dictionary.
        """
        record = copy.deepcopy(self.extra)
        record['id'] = self.id
        record['content'] = self.content
        if self.created_at is not None:
            record['createdAt'] = self.created_at
        record['timestamp'] = self.timestamp
        if self.tags:
            record['tags'] = list(self.tags)
        if self.asset_ids:
            record['assetIds'] = list(self.asset_ids)
        if self.updated_at is not None:
            record['updatedAt'] = self.updated_at
        record['isDeleted'] = self.is_deleted
        if self.deleted_at is not None:
            record['deletedAt'] = self.deleted_at
        return record

    def __eq__(self, other):
        if not isinstance(other, Note):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return "Note(id={0!r}, updated_at={1!r}, is_deleted={2!r})".format(self.id, self.updated_at, self.is_deleted)

    def __str__(self):
        return "Note: {}".format(self.id)


class Attachment:
    """
    Represents a binary attachment (usually an image) referenced by one or more notes.
    """

    #: Media type used when the real one is unknown, e.g. for attachments downloaded from the remote store.
    DEFAULT_MIME_TYPE: str = 'application/octet-stream'

    def __init__(self, id: str, data: bytes, mime_type: str = DEFAULT_MIME_TYPE, created_at: int | None = None):
        """
        Create a new attachment.

        :param id: the ID of the attachment, independent of its content.
        :param data: the binary payload.
        :param mime_type: the media type of the payload.
        :param created_at: creation instant in epoch milliseconds.
        """
        self.id: str = id
        self.data: bytes = data
        self.mime_type: str = mime_type
        self.created_at: int | None = created_at

    def __str__(self):
        return "Attachment: {0} ({1}, {2} bytes)".format(self.id, self.mime_type, len(self.data))
