"""
Contains the ``SyncEngine`` class, which reconciles the local store with the remote WebDAV store.

The remote layout is::

    <root>/notes/<YYYY>-W<ww>.json   one shard per ISO week, a JSON array of notes
    <root>/assets/<attachment id>    raw attachment payloads

Shards are processed newest first. Each shard is fetched, merged with the local notes of the same week using
last-writer-wins, written back to the local store, and uploaded again if a local note won the merge.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List

from notebridge.sync.model.assetreconciler import AssetReconciler
from notebridge.sync.model.davclient import DavClient
from notebridge.sync.model.deletionqueue import DeletionQueue
from notebridge.sync.model.errors import AuthenticationError, NoteBridgeError, SyncInProgressError
from notebridge.sync.model.localstore import LocalStore
from notebridge.sync.model.note import Note
from notebridge.sync.model.shard import SHARD_EXTENSION, ShardMerge, parse_shard, partition_notes, shard_file_name


class SyncEngine:
    """
    Drives a synchronisation run. Only one run may be in flight at a time; a second call to ``synchronize()`` while
    a run is in progress raises ``SyncInProgressError``.
    """

    #: Default name of the remote root collection.
    DEFAULT_ROOT: str = 'notebridge'

    def __init__(self, store: LocalStore, client: DavClient, root: str = DEFAULT_ROOT):
        """
        Create a new sync engine.

        :param store: the local store.
        :param client: the remote transport.
        :param root: path of the remote root collection.
        """
        self.store: LocalStore = store
        self.client: DavClient = client
        self.root: str = root.strip('/')
        self.notes_path: str = '{}/notes'.format(self.root)
        self.assets_path: str = '{}/assets'.format(self.root)
        self.deletion_queue: DeletionQueue = DeletionQueue(store)
        self._lock = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def synchronize(self, progress: Callable[[str], None] | None = None) -> dict:
        """
        Run a full synchronisation. Returns a dictionary with the following keys:

        - ``shards_processed`` - keys of every shard processed, newest first, as :py:class:`List[str]`.
        - ``shards_uploaded`` - keys of shards uploaded to the remote store, as :py:class:`List[str]`.
        - ``shards_failed`` - keys of shards which could not be fetched and were left untouched remotely,
          as :py:class:`List[str]`.
        - ``local_updated`` - IDs of notes written to the local store, as :py:class:`List[str]`.
        - ``assets_uploaded`` / ``assets_downloaded`` / ``assets_failed`` - attachment IDs, as :py:class:`List[str]`.
        - ``remote_assets_deleted`` / ``remote_assets_pending`` - attachment IDs from the deletion queue,
          as :py:class:`List[str]`.

        :param progress: optional callback receiving human-readable progress messages.
        :return: the result as above.
        :raises SyncInProgressError: if another run is in progress.
        :raises NoteBridgeError: on the first fatal error, e.g. authentication failure or failure to list shards.
        """
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError()
        try:
            return self._run(progress or (lambda msg: None))
        finally:
            self._lock.release()

    def _run(self, progress: Callable[[str], None]) -> dict:
        result = {
            'shards_processed': [],
            'shards_uploaded': [],
            'shards_failed': [],
            'local_updated': [],
            'assets_uploaded': [],
            'assets_downloaded': [],
            'assets_failed': [],
            'remote_assets_deleted': [],
            'remote_assets_pending': []
        }

        progress('Connecting to server...')
        for path in (self.root, self.notes_path, self.assets_path):
            self.client.ensure_collection(path)

        queued = self.deletion_queue.list()
        if queued:
            progress('Deleting {} remote attachments...'.format(len(queued)))
            deleted, pending = self.deletion_queue.drain(self.client, self.assets_path)
            result['remote_assets_deleted'].extend(deleted)
            result['remote_assets_pending'].extend(pending)

        progress('Preparing local notes...')
        local_notes = self.store.list_all()
        local_index = {note.id: note for note in local_notes}
        local_groups = partition_notes(local_notes)

        progress('Fetching remote shard list...')
        remote_keys = set()
        for entry in self.client.list_entries(self.notes_path):
            if entry.is_collection or not entry.name.endswith(SHARD_EXTENSION):
                logging.debug('Ignoring remote entry {}'.format(entry))
                continue
            remote_keys.add(entry.name[:-len(SHARD_EXTENSION)])

        keys = sorted(set(local_groups.keys()) | remote_keys, reverse=True)
        reconciler = AssetReconciler(self.store, self.client, self.assets_path, progress)
        for idx, key in enumerate(keys):
            progress('Synchronising {0} ({1}/{2})...'.format(key, idx + 1, len(keys)))
            # Pick up notes stored while merging earlier shards
            shard_notes = [local_index[note.id] for note in local_groups.get(key, [])]
            self.sync_shard(key, shard_notes, key in remote_keys, reconciler, result, local_index)
            result['shards_processed'].append(key)

        logging.debug(
            'Sync:: Shards Uploaded: {} | Shards Failed: {} | Local Updated: {} | Assets Uploaded: {} | '
            'Assets Downloaded: {}'.format(
                ','.join(result['shards_uploaded'] or ['None']),
                ','.join(result['shards_failed'] or ['None']),
                ','.join(result['local_updated'] or ['None']),
                ','.join(result['assets_uploaded'] or ['None']),
                ','.join(result['assets_downloaded'] or ['None'])))
        progress('Synchronisation complete.')
        return result

    def fetch_shard(self, key: str) -> List[Note]:
        """
        Download and parse a remote shard.

        :param key: the shard key.
        :return: the notes in the remote shard.
        """
        content = self.client.get_text('{0}/{1}'.format(self.notes_path, shard_file_name(key)))
        return parse_shard(content)

    def sync_shard(self, key: str, local_notes: List[Note], remote_exists: bool,
                   reconciler: AssetReconciler, result: dict,
                   local_index: Dict[str, Note] | None = None) -> ShardMerge:
        """
        Fetch, merge, store and (if needed) upload one shard.

        If the remote shard exists but cannot be fetched or parsed, local notes are kept as they are and the shard is
        not uploaded, so the remote copy is never overwritten from an unknown state.

        :param key: the shard key.
        :param local_notes: the local notes of this shard.
        :param remote_exists: true if the remote shard file exists.
        :param reconciler: the attachment reconciler.
        :param result: dictionary where results are appended.
        :param local_index: every local note by ID, updated as notes are stored. Defaults to this shard's notes.
        :return: the merge of this shard.
        """
        remote_notes: List[Note] = []
        fetch_failed = False
        if remote_exists:
            try:
                remote_notes = self.fetch_shard(key)
            except AuthenticationError:
                raise
            except NoteBridgeError as e:
                logging.error('Failed to fetch shard {0}, leaving it untouched remotely: {1}'.format(key, e))
                fetch_failed = True
                result['shards_failed'].append(key)

        merge = ShardMerge(key, local_notes, remote_notes, local_index)
        logging.debug(str(merge))

        for note in merge.to_store:
            self.store.upsert(note)
            if local_index is not None:
                local_index[note.id] = note
            result['local_updated'].append(note.id)

        assets = reconciler.reconcile(merge.notes)
        result['assets_uploaded'].extend(assets['uploaded'])
        result['assets_downloaded'].extend(assets['downloaded'])
        result['assets_failed'].extend(assets['failed'])

        if not fetch_failed and (not remote_exists or merge.local_won):
            self.client.put_text('{0}/{1}'.format(self.notes_path, shard_file_name(key)), merge.serialise(),
                                 content_type='application/json; charset=utf-8')
            result['shards_uploaded'].append(key)

        return merge
