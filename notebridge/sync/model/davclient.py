"""
Contains the ``DavClient`` class, a small WebDAV client used as the remote transport, and the ``DavEntry`` class which
represents one entry of a directory listing.

Every operation goes through the same retry policy:

- connection failures, timeouts and 5xx responses are retried with exponential backoff, then raised as
  ``TransientNetworkError``;
- 401 responses raise ``AuthenticationError`` straight away;
- other 4xx responses raise ``ClientProtocolError`` straight away.
"""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Callable, List, Tuple
from urllib.parse import quote, unquote, urlparse

import httpx

from notebridge.helpers import DateUtil
from notebridge.sync.model.errors import (AuthenticationError, ClientProtocolError, NoteBridgeError,
                                          SerializationError, TransientNetworkError)
from notebridge.sync.model.retry import with_retry

DAV_NS = '{DAV:}'


class DavEntry:
    """
    Represents a file or collection found in a WebDAV directory listing.
    """

    def __init__(self, name: str, href: str, is_collection: bool = False,
                 last_modified: datetime | None = None, size: int = 0):
        """
        Create a new listing entry.

        :param name: the last segment of the entry's path, URL-decoded.
        :param href: the href reported by the server.
        :param is_collection: true if the entry is a collection (folder).
        :param last_modified: last modification date reported by the server, if any.
        :param size: content length in bytes, 0 if unknown.
        """
        self.name: str = name
        self.href: str = href
        self.is_collection: bool = is_collection
        self.last_modified: datetime | None = last_modified
        self.size: int = size

    def __str__(self):
        return "{0}: {1}".format('Collection' if self.is_collection else 'File', self.name)


class DavClient:
    """
    Client for a WebDAV server. Paths given to the public methods are relative to the base URL.
    """

    #: Body of the PROPFIND requests, asking only for the properties used by ``list_entries()``.
    PROPFIND_BODY: bytes = (b'<?xml version="1.0" encoding="utf-8"?>'
                            b'<d:propfind xmlns:d="DAV:"><d:prop>'
                            b'<d:resourcetype/><d:getlastmodified/><d:getcontentlength/>'
                            b'</d:prop></d:propfind>')

    def __init__(self,
                 url: str,
                 username: str,
                 password: str | None = None,
                 timeout: float = 30.0,
                 max_retries: int = 3,
                 base_delay: float = 0.5,
                 max_delay: float = 8.0,
                 transport: httpx.BaseTransport | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Create a new WebDAV client.

        :param url: base URL of the WebDAV server, e.g. ``https://cloud.example.com/remote.php/dav/files/me``.
        :param username: username sent with every request.
        :param password: password sent with every request.
        :param timeout: request timeout in seconds.
        :param max_retries: how many times a transient failure is retried.
        :param base_delay: delay before the first retry, in seconds.
        :param max_delay: maximum delay between retries, in seconds.
        :param transport: optional ``httpx`` transport, used by tests.
        :param sleep: function used to wait between retries.
        """
        self.base_url: str = url.rstrip('/')
        self.max_retries: int = max_retries
        self.base_delay: float = base_delay
        self.max_delay: float = max_delay
        self.sleep: Callable[[float], None] = sleep
        self.client = httpx.Client(
            auth=(username, password or ''),
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def url(self, path: str) -> str:
        """
        Get the full URL of a path relative to the base URL.

        :param path: the relative path. A trailing slash is kept.
        :return: the full URL.
        """
        return '{0}/{1}'.format(self.base_url, quote(path.lstrip('/'), safe='/'))

    def _send(self, method: str, path: str, content: bytes | None = None, headers: dict | None = None) -> httpx.Response:
        try:
            response = self.client.request(method, self.url(path), content=content, headers=headers)
        except httpx.TransportError as e:
            raise TransientNetworkError('{0} {1} failed: {2!r}'.format(method, path, e)) from e

        if response.status_code == 401:
            raise AuthenticationError(path)
        if response.status_code >= 500:
            raise TransientNetworkError('{0} {1} failed with status {2}'.format(method, path, response.status_code))
        return response

    def _request(self,
                 method: str,
                 path: str,
                 content: bytes | None = None,
                 headers: dict | None = None,
                 accept: Tuple[int, ...] = ()) -> httpx.Response:
        """
        Send a request with the retry policy applied.

        :param method: the HTTP method.
        :param path: the relative path.
        :param content: optional request body.
        :param headers: optional request headers.
        :param accept: non-2xx status codes which count as success for this request.
        :return: the response.
        :raises AuthenticationError: on a 401 response.
        :raises TransientNetworkError: when every attempt failed with a transient error.
        :raises ClientProtocolError: on any other unsuccessful response.
        """
        retrying_send = with_retry(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            sleep=self.sleep,
        )(self._send)
        response = retrying_send(method, path, content, headers)
        if response.is_success or response.status_code in accept:
            return response
        raise ClientProtocolError(response.status_code, path, method)

    def exists(self, path: str) -> bool:
        """
        Check whether a file or collection exists. Never raises; any failure counts as missing.

        :param path: the relative path.
        :return: true if the server reports the resource.
        """
        try:
            self._request('PROPFIND', path, content=DavClient.PROPFIND_BODY,
                          headers={'Depth': '0', 'Content-Type': 'application/xml; charset=utf-8'})
        except NoteBridgeError as e:
            logging.debug('{} treated as missing: {}'.format(path, e))
            return False
        return True

    def ensure_collection(self, path: str) -> None:
        """
        Create a collection unless it already exists.

        :param path: the relative path of the collection.
        """
        collection = path.rstrip('/') + '/'
        if self.exists(collection):
            return
        # 405 means the collection is already there
        self._request('MKCOL', collection, accept=(405,))
        logging.debug('Created remote collection {}'.format(collection))

    def list_entries(self, path: str) -> List[DavEntry]:
        """
        List the direct children of a collection.

        :param path: the relative path of the collection.
        :return: the entries of the collection, excluding the collection itself.
        :raises SerializationError: if the listing is not a valid multistatus document.
        """
        collection = path.rstrip('/') + '/'
        response = self._request('PROPFIND', collection, content=DavClient.PROPFIND_BODY,
                                 headers={'Depth': '1', 'Content-Type': 'application/xml; charset=utf-8'})
        return DavClient.parse_multistatus(response.content, self.url(collection))

    def get_text(self, path: str) -> str:
        response = self._request('GET', path)
        try:
            return response.content.decode('utf-8')
        except UnicodeDecodeError as e:
            raise SerializationError('{0} is not valid UTF-8: {1}'.format(path, e)) from e

    def put_text(self, path: str, text: str, content_type: str = 'text/plain; charset=utf-8') -> None:
        self._request('PUT', path, content=text.encode('utf-8'), headers={'Content-Type': content_type})

    def get_binary(self, path: str) -> bytes:
        return self._request('GET', path).content

    def put_binary(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        self._request('PUT', path, content=data, headers={'Content-Type': content_type})

    def delete(self, path: str) -> None:
        """
        Delete a file. A file which is already gone counts as deleted.

        :param path: the relative path.
        """
        self._request('DELETE', path, accept=(404,))

    @staticmethod
    def parse_multistatus(body: bytes, request_url: str) -> List[DavEntry]:
        """
        Parse a PROPFIND multistatus response. Entries which cannot be parsed are skipped.

        :param body: the raw response body.
        :param request_url: the URL which was listed, used to drop the entry for the collection itself.
        :return: the entries found.
        :raises SerializationError: if the body is not XML.
        """
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise SerializationError('Invalid directory listing from {0}: {1}'.format(request_url, e)) from e

        own_path = unquote(urlparse(request_url).path).rstrip('/')
        entries = []
        for element in root.iter(DAV_NS + 'response'):
            entry = DavClient._parse_response(element)
            if entry is None:
                logging.debug('Skipping unparsable listing entry in {}'.format(request_url))
                continue
            entry_path = unquote(urlparse(entry.href).path).rstrip('/')
            if entry_path == own_path:
                continue
            entries.append(entry)
        return entries

    @staticmethod
    def _parse_response(element: ET.Element) -> DavEntry | None:
        href = (element.findtext(DAV_NS + 'href') or '').strip()
        if not href:
            return None

        prop = None
        for propstat in element.findall(DAV_NS + 'propstat'):
            status = (propstat.findtext(DAV_NS + 'status') or '').split()
            if len(status) > 1 and status[1] != '200':
                continue
            prop = propstat.find(DAV_NS + 'prop')
            if prop is not None:
                break
        if prop is None:
            return None

        name = unquote(urlparse(href).path.rstrip('/').rsplit('/', 1)[-1])
        if not name:
            return None

        resource_type = prop.find(DAV_NS + 'resourcetype')
        is_collection = resource_type is not None and resource_type.find(DAV_NS + 'collection') is not None

        try:
            size = int(prop.findtext(DAV_NS + 'getcontentlength') or 0)
        except ValueError:
            size = 0

        last_modified = DateUtil.parse_http_date(prop.findtext(DAV_NS + 'getlastmodified') or '')
        return DavEntry(
            name=name,
            href=href,
            is_collection=is_collection,
            last_modified=last_modified,
            size=size)

    def close(self):
        """Close the underlying HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
