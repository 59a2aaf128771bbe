"""
This is the model of the note-syncing part of NoteBridge. Here, you'll find the following:

- ``note.py`` - Contains the ``Note`` and ``Attachment`` classes.
- ``shard.py`` - The weekly sharding scheme, conflict resolution and the merge of a shard.
- ``davclient.py`` - Contains the ``DavClient`` class, the WebDAV transport with retries.
- ``retry.py`` - Retry with exponential backoff.
- ``localstore.py`` - The ``LocalStore`` interface and its SQLite implementation.
- ``deletionqueue.py`` - The queue of attachments awaiting remote deletion.
- ``assetreconciler.py`` - Uploads and downloads missing attachments.
- ``syncengine.py`` - Contains the ``SyncEngine`` class which runs a synchronisation.
- ``errors.py`` - Exceptions raised during synchronisation.

"""

from . import assetreconciler, davclient, deletionqueue, errors, localstore, note, retry, shard, syncengine

__all__ = ['assetreconciler', 'davclient', 'deletionqueue', 'errors', 'localstore', 'note', 'retry', 'shard',
           'syncengine', ]
