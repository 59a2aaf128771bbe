"""
This is the note synchronisation controller. It contains all methods required for note synchronisation. These are called
by the CLI, but can be called separately if imported.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from notebridge.sync.model.davclient import DavClient
from notebridge.sync.model.errors import AuthenticationError, NoteBridgeError
from notebridge.sync.model.localstore import SqliteLocalStore
from notebridge.sync.model.syncengine import SyncEngine


class SyncController:
    """
    Contains various static methods for the stages of note synchronisation.
    """

    #: URL of the WebDAV server
    WEBDAV_URL: str = ''
    #: Username of the WebDAV server
    WEBDAV_USERNAME: str = ''
    #: Password of the WebDAV server (this is stored in the keyring)
    WEBDAV_PASSWORD: str = ''
    #: Remote root collection
    REMOTE_ROOT: str = SyncEngine.DEFAULT_ROOT
    #: Request timeout in seconds
    TIMEOUT: float = 30.0
    #: Number of retries for transient failures
    MAX_RETRIES: int = 3
    #: The local store
    STORE: SqliteLocalStore | None = None
    #: The sync engine, created by ``connect()``
    ENGINE: SyncEngine | None = None

    @staticmethod
    def open_store() -> tuple[bool, str]:
        """
        Open the local SQLite store, unless one has already been set.

        :returns:

            -success (:py:class:`bool`) - true if the store is opened successfully.

            -data (:py:class:`str`) - error message on failure, or success message.

        """
        if SyncController.STORE is not None:
            return True, 'Local store already open.'
        try:
            SyncController.STORE = SqliteLocalStore()
        except sqlite3.Error as e:
            error = 'Failed to open local store: {}'.format(e)
            logging.critical(error)
            return False, error
        return True, 'Local store opened.'

    @staticmethod
    def connect() -> tuple[bool, str]:
        """
        Create the WebDAV client and the sync engine. No request is sent until synchronisation starts.

        :returns:

            -success (:py:class:`bool`) - true if the engine is created.

            -data (:py:class:`str`) - error message on failure, or success message.

        """
        success, data = SyncController.open_store()
        if not success:
            return False, data
        if SyncController.ENGINE is not None:
            SyncController.ENGINE.client.close()
        client = DavClient(
            url=SyncController.WEBDAV_URL,
            username=SyncController.WEBDAV_USERNAME,
            password=SyncController.WEBDAV_PASSWORD,
            timeout=SyncController.TIMEOUT,
            max_retries=SyncController.MAX_RETRIES)
        SyncController.ENGINE = SyncEngine(SyncController.STORE, client, SyncController.REMOTE_ROOT)
        debug_msg = 'Sync engine ready for {0}/{1}'.format(SyncController.WEBDAV_URL.rstrip('/'),
                                                            SyncController.ENGINE.root)
        logging.debug(debug_msg)
        return True, debug_msg

    @staticmethod
    def sync_notes(progress: Callable[[str], None] | None = None) -> tuple[bool, str] | tuple[bool, dict]:
        """
        Synchronise notes and attachments. On success, returns the result dictionary of ``SyncEngine.synchronize()``.

        :param progress: optional callback receiving progress messages.

        :returns:

            -success (:py:class:`bool`) - true if notes are successfully synchronised.

            -data (:py:class:`str` | :py:class:`dict`) - error message on failure, or :py:class:`dict` with results.

        """
        if SyncController.ENGINE is None:
            success, data = SyncController.connect()
            if not success:
                return False, data
        try:
            result = SyncController.ENGINE.synchronize(progress)
        except AuthenticationError as e:
            error = str(e)
            logging.critical(error)
            return False, error
        except NoteBridgeError as e:
            error = 'Failed to sync notes: {}'.format(e)
            logging.critical(error)
            return False, error

        debug_msg = (
            "Notes synchronisation:: Shards Uploaded: {} | Shards Failed: {} | Local Updated: {} | "
            "Attachments Uploaded: {} | Attachments Downloaded: {} | Remote Attachments Deleted: {}").format(
            len(result['shards_uploaded']),
            ','.join(result['shards_failed'] or ['None']),
            len(result['local_updated']),
            len(result['assets_uploaded']),
            len(result['assets_downloaded']),
            len(result['remote_assets_deleted']))
        logging.debug(debug_msg)
        return True, result

    @staticmethod
    def cleanup_trash(retention_days: int = SqliteLocalStore.TRASH_RETENTION_DAYS) -> tuple[bool, str]:
        """
        Erase notes which have been in the trash for longer than the retention window. Their attachments are queued for
        remote deletion on the next sync.

        :param retention_days: number of days a note stays in the trash.

        :returns:

            -success (:py:class:`bool`) - true if the trash is cleaned up successfully.

            -data (:py:class:`str`) - error message on failure, or success message.

        """
        success, data = SyncController.open_store()
        if not success:
            return False, data
        try:
            erased = SyncController.STORE.cleanup_trash(retention_days)
        except sqlite3.Error as e:
            error = 'Failed to clean up trash: {}'.format(e)
            logging.critical(error)
            return False, error
        debug_msg = 'Erased {0} notes older than {1} days from the trash.'.format(len(erased), retention_days)
        logging.debug(debug_msg)
        return True, debug_msg

    @staticmethod
    def empty_trash() -> tuple[bool, str]:
        """
        Erase every note in the trash.

        :returns:

            -success (:py:class:`bool`) - true if the trash is emptied successfully.

            -data (:py:class:`str`) - error message on failure, or success message.

        """
        success, data = SyncController.open_store()
        if not success:
            return False, data
        try:
            erased = SyncController.STORE.empty_trash()
        except sqlite3.Error as e:
            error = 'Failed to empty trash: {}'.format(e)
            logging.critical(error)
            return False, error
        debug_msg = 'Erased {} notes from the trash.'.format(len(erased))
        logging.debug(debug_msg)
        return True, debug_msg
