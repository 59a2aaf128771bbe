"""
This is the note-synchronisation part of NoteBridge.

- ``controller.py`` - the ``SyncController``, which runs the stages of synchronisation for the CLI.
- ``model`` - notes, shards, the WebDAV client, the local store and the sync engine.

"""

from . import controller, model

__all__ = ['controller', 'model', ]
