"""
Contains the ``DeletionQueue`` class: the durable list of attachments whose remote copy still has to be deleted.
"""

from __future__ import annotations

import logging
from typing import List

from notebridge.sync.model.davclient import DavClient
from notebridge.sync.model.errors import AuthenticationError, NoteBridgeError
from notebridge.sync.model.localstore import LocalStore


class DeletionQueue:
    """
    Queue of attachment IDs awaiting remote deletion. The queue itself is persisted by the local store; this class
    drains it against the remote server.
    """

    def __init__(self, store: LocalStore):
        """
        Create a new deletion queue.

        :param store: the local store persisting the queue.
        """
        self.store: LocalStore = store

    def enqueue(self, asset_id: str) -> None:
        self.store.enqueue_deletion(asset_id)

    def list(self) -> List[str]:
        return self.store.list_deletions()

    def remove(self, asset_id: str) -> None:
        self.store.remove_deletion(asset_id)

    def drain(self, client: DavClient, assets_path: str) -> tuple[List[str], List[str]]:
        """
        Delete the remote copy of every queued attachment. Attachments deleted successfully are removed from the queue;
        any other attachment stays queued for the next run.

        :param client: the remote transport.
        :param assets_path: remote path of the assets collection.

        :returns:

            -deleted (:py:class:`List[str]`) - IDs whose remote copy was deleted.

            -pending (:py:class:`List[str]`) - IDs which are still queued.

        :raises AuthenticationError: if the server rejects the credentials.
        """
        deleted = []
        pending = []
        for asset_id in self.list():
            try:
                client.delete('{0}/{1}'.format(assets_path, asset_id))
            except AuthenticationError:
                raise
            except NoteBridgeError as e:
                logging.warning('Failed to delete remote attachment {0}, will retry next sync: {1}'.format(asset_id, e))
                pending.append(asset_id)
                continue
            self.remove(asset_id)
            deleted.append(asset_id)
        return deleted, pending
