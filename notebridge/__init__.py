"""
This is the main package for NoteBridge.

- ``sync`` - the note-synchronisation part of NoteBridge.
- ``cli`` - the NoteBridge command-line interface.
- ``helpers`` - helpers used across synchronisation and the CLI.

"""

from . import helpers

__all__ = ['helpers', ]
