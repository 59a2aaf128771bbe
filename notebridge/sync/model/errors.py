"""
Contains the exceptions raised during synchronisation. Every failure of the remote transport is mapped onto one of
these, so callers never have to deal with ``httpx`` exceptions directly.
"""

from __future__ import annotations


class NoteBridgeError(Exception):
    """Base class for all synchronisation errors."""


class AuthenticationError(NoteBridgeError):
    """
    The remote server rejected the configured credentials. This is never retried; the user has to reconfigure the
    WebDAV username or password.
    """

    def __init__(self, path: str = ''):
        self.path: str = path
        super().__init__('WebDAV authentication failed. Check the configured username and password.')


class TransientNetworkError(NoteBridgeError):
    """A connection failure, timeout or 5xx response which persisted after every retry."""


class ClientProtocolError(NoteBridgeError):
    """The server answered with a 4xx status other than 401."""

    def __init__(self, status_code: int, path: str, method: str = ''):
        self.status_code: int = status_code
        self.path: str = path
        self.method: str = method
        super().__init__('{0} {1} failed with status {2}'.format(method, path, status_code).strip())


class SerializationError(NoteBridgeError):
    """A remote document (shard JSON or directory listing) could not be parsed."""


class SyncInProgressError(NoteBridgeError):
    """A synchronisation run was requested while another one is still running."""

    def __init__(self):
        super().__init__('A synchronisation run is already in progress.')
