"""
Contains the sharding scheme and the merge of a local and a remote shard.

Notes are stored remotely in one JSON file per ISO week, named after ``shard_key()``. A shard is the only unit in
which the remote store is read or written.
"""

from __future__ import annotations

import copy
import json
from typing import Dict, List

from notebridge.helpers import DateUtil
from notebridge.sync.model.errors import SerializationError
from notebridge.sync.model.note import Note

#: Extension of shard files in the remote notes folder.
SHARD_EXTENSION: str = '.json'


def shard_key(timestamp: int) -> str:
    """
    Get the key of the shard a note belongs to. This is the ISO week (``YYYY-Www``) of the note's creation instant,
    taken in UTC so that every device computes the same key.

    :param timestamp: creation instant in epoch milliseconds.
    :return: the shard key, e.g. ``2024-W01``.
    """
    iso_year, iso_week, _ = DateUtil.from_millis(timestamp).isocalendar()
    return '{0:04d}-W{1:02d}'.format(iso_year, iso_week)


def shard_file_name(key: str) -> str:
    return key + SHARD_EXTENSION


def partition_notes(notes: List[Note]) -> Dict[str, List[Note]]:
    """
    Group notes by shard key.

    :param notes: the notes to group.
    :return: a dictionary of shard key to the notes in that shard.
    """
    groups: Dict[str, List[Note]] = {}
    for note in notes:
        groups.setdefault(shard_key(note.timestamp), []).append(note)
    return groups


def resolve_conflict(local: Note, remote: Note | None) -> Note:
    """
    Pick the winner between two copies of the same note. The copy with the strictly greater ``updated_at`` wins;
    a missing ``updated_at`` counts as 0 and a tie goes to the local copy.

    :param local: the local copy.
    :param remote: the remote copy, or ``None`` if the note does not exist remotely.
    :return: the winning copy.
    """
    if remote is None:
        return local
    if remote.updated_or_zero > local.updated_or_zero:
        return remote
    return local


def parse_shard(content: str) -> List[Note]:
    """
    Parse the content of a remote shard file.

    :param content: the JSON text of the shard.
    :return: the notes in the shard.
    :raises SerializationError: if the shard is not a JSON array of note records.
    """
    try:
        records = json.loads(content) if content.strip() else []
    except json.JSONDecodeError as e:
        raise SerializationError('Shard is not valid JSON: {}'.format(e)) from e
    if not isinstance(records, list):
        raise SerializationError('Shard is not a JSON array')
    return [Note.create_from_dict(record) for record in records]


def serialise_shard(notes: List[Note]) -> str:
    return json.dumps([note.to_dict() for note in notes], ensure_ascii=False)


class ShardMerge:
    """
    The result of merging the local notes of one shard with the remote copy of that shard.
    """

    def __init__(self, key: str, local_notes: List[Note], remote_notes: List[Note],
                 local_index: Dict[str, Note] | None = None):
        """
        Merge a shard. The merged set is seeded with the remote notes, then every local note is resolved against its
        remote counterpart with ``resolve_conflict()``.

        A remote note is only written to the local store if it is absent locally or strictly newer than the local copy.
        The local copy is looked up in ``local_index``, since another device may file a note under a different week.

        :param key: the shard key.
        :param local_notes: the notes of this shard in the local store.
        :param remote_notes: the notes of this shard in the remote file (empty if the file does not exist).
        :param local_index: every note of the local store by ID. Defaults to ``local_notes``.
        """
        self.key: str = key
        #: Merged notes by ID, remote order first then new local notes.
        self.merged: Dict[str, Note] = {}
        #: True if at least one local note is new or strictly newer than its remote copy.
        self.local_won: bool = False
        #: Notes which must be written to the local store.
        self.to_store: List[Note] = []

        remote_by_id: Dict[str, Note] = {}
        for note in remote_notes:
            remote_by_id[note.id] = note
            self.merged[note.id] = copy.deepcopy(note)

        for local in local_notes:
            remote = remote_by_id.get(local.id)
            winner = resolve_conflict(local, remote)
            self.merged[local.id] = copy.deepcopy(winner)
            if remote is None or local.updated_or_zero > remote.updated_or_zero:
                self.local_won = True

        if local_index is None:
            local_index = {note.id: note for note in local_notes}
        for note_id, remote in remote_by_id.items():
            local = local_index.get(note_id)
            if local is None or remote.updated_or_zero > local.updated_or_zero:
                self.to_store.append(self.merged[note_id])

    @property
    def notes(self) -> List[Note]:
        return list(self.merged.values())

    def serialise(self) -> str:
        """
        Serialise the merged shard for upload.

        :return: the merged shard as a JSON array.
        """
        return serialise_shard(self.notes)

    def __str__(self):
        return "Shard {0}: {1} notes, {2} to store locally, local won: {3}".format(
            self.key, len(self.merged), len(self.to_store), self.local_won)
