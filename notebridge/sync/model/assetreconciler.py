"""
Contains the ``AssetReconciler`` class, which makes sure every attachment referenced by a live note exists both
locally and remotely.
"""

from __future__ import annotations

import logging
from typing import Callable, List

from notebridge.sync.model.davclient import DavClient
from notebridge.sync.model.errors import AuthenticationError, NoteBridgeError
from notebridge.sync.model.localstore import LocalStore
from notebridge.sync.model.note import Note


class AssetReconciler:
    """
    Uploads attachments which are missing remotely and downloads attachments which are missing locally.
    """

    def __init__(self,
                 store: LocalStore,
                 client: DavClient,
                 assets_path: str,
                 progress: Callable[[str], None] | None = None):
        """
        Create a new reconciler.

        :param store: the local store.
        :param client: the remote transport.
        :param assets_path: remote path of the assets collection.
        :param progress: optional callback receiving progress messages.
        """
        self.store: LocalStore = store
        self.client: DavClient = client
        self.assets_path: str = assets_path
        self.progress: Callable[[str], None] = progress or (lambda msg: None)

    def remote_path(self, asset_id: str) -> str:
        return '{0}/{1}'.format(self.assets_path, asset_id)

    def reconcile(self, notes: List[Note]) -> dict:
        """
        Reconcile the attachments of a set of notes. Notes in the trash are ignored. A failed transfer is logged and
        retried on the next run.

        Returns a dictionary with the following keys:

        - ``uploaded`` - IDs of attachments uploaded, as :py:class:`List[str]`.
        - ``downloaded`` - IDs of attachments downloaded, as :py:class:`List[str]`.
        - ``failed`` - IDs of attachments which could not be transferred, as :py:class:`List[str]`.

        :param notes: the notes whose attachments should be reconciled.
        :return: the result as above.
        :raises AuthenticationError: if the server rejects the credentials.
        """
        result = {
            'uploaded': [],
            'downloaded': [],
            'failed': []
        }
        seen = set()
        for note in notes:
            if note.is_deleted:
                continue
            for asset_id in note.asset_ids:
                if asset_id in seen:
                    continue
                seen.add(asset_id)
                try:
                    self.reconcile_asset(asset_id, result)
                except AuthenticationError:
                    raise
                except NoteBridgeError as e:
                    logging.warning('Failed to sync attachment {0}: {1}'.format(asset_id, e))
                    result['failed'].append(asset_id)
        return result

    def reconcile_asset(self, asset_id: str, result: dict) -> None:
        if not self.store.asset_exists(asset_id):
            self.progress('Downloading attachment {}...'.format(asset_id[:6]))
            data = self.client.get_binary(self.remote_path(asset_id))
            self.store.write_asset(asset_id, data)
            self.store.mark_asset_synced(asset_id)
            result['downloaded'].append(asset_id)
        elif not self.store.is_asset_synced(asset_id):
            asset = self.store.read_asset(asset_id)
            self.progress('Uploading attachment {}...'.format(asset_id[:6]))
            self.client.put_binary(self.remote_path(asset_id), asset.data, asset.mime_type)
            self.store.mark_asset_synced(asset_id)
            result['uploaded'].append(asset_id)
