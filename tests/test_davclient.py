from datetime import datetime, timezone

import httpx
import pytest
from decouple import config

from fakes import BASE_URL, FakeWebDav
from notebridge.helpers import get_uuid
from notebridge.sync.model.davclient import DavClient
from notebridge.sync.model.errors import AuthenticationError, ClientProtocolError, SerializationError, \
    TransientNetworkError

TEST_ENV = config('TEST_ENV', default='remote')

MULTISTATUS = b"""<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:">
  <d:response>
    <d:href>/dav/notebridge/notes/</d:href>
    <d:propstat>
      <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/dav/notebridge/notes/2024-W01.json</d:href>
    <d:propstat>
      <d:prop>
        <d:resourcetype/>
        <d:getcontentlength>42</d:getcontentlength>
        <d:getlastmodified>Mon, 01 Jan 2024 10:00:00 GMT</d:getlastmodified>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/dav/notebridge/notes/old%20notes/</d:href>
    <d:propstat>
      <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/dav/notebridge/notes/hidden.json</d:href>
    <d:propstat>
      <d:prop/>
      <d:status>HTTP/1.1 404 Not Found</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>"""


class TestDavClient:

    @staticmethod
    def mock_client(handler, max_retries=3, delays=None):
        return DavClient(BASE_URL, 'user', 'secret', max_retries=max_retries,
                         transport=httpx.MockTransport(handler),
                         sleep=delays.append if delays is not None else (lambda delay: None))

    def test_url(self):
        client = DavClient(BASE_URL + '/', 'user', 'secret')
        assert client.url('notebridge/notes/') == BASE_URL + '/notebridge/notes/'
        assert client.url('/notebridge/my notes/a b.json') == BASE_URL + '/notebridge/my%20notes/a%20b.json'
        client.close()

    def test_sends_credentials(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get('Authorization'))
            return httpx.Response(200, content=b'hello')

        client = TestDavClient.mock_client(handler)
        assert client.get_text('notes.txt') == 'hello'
        assert seen[0].startswith('Basic ')

    def test_retries_transient_failures(self):
        calls = []
        delays = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=b'[]')

        client = TestDavClient.mock_client(handler, delays=delays)
        assert client.get_text('notebridge/notes/2024-W01.json') == '[]'
        assert len(calls) == 3
        assert len(delays) == 2

    def test_retries_exhausted(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError('Connection refused', request=request)

        client = TestDavClient.mock_client(handler, max_retries=3)
        with pytest.raises(TransientNetworkError):
            client.get_binary('notebridge/assets/a1')
        assert len(calls) == 4

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        client = TestDavClient.mock_client(handler)
        with pytest.raises(ClientProtocolError) as e:
            client.get_text('missing.json')
        assert e.value.status_code == 404
        assert e.value.method == 'GET'
        assert len(calls) == 1

    def test_authentication_failure(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        client = TestDavClient.mock_client(handler)
        with pytest.raises(AuthenticationError):
            client.put_text('notes.txt', 'hello')
        assert len(calls) == 1

    def test_delete(self):
        server = FakeWebDav()
        server.add_file('notebridge/assets/a1', b'data')
        client = server.client()

        client.delete('notebridge/assets/a1')
        assert 'notebridge/assets/a1' not in server.files

        # Already gone
        client.delete('notebridge/assets/a1')
        assert server.calls('DELETE') == 2

    def test_exists(self):
        server = FakeWebDav()
        server.add_file('notebridge/notes/2024-W01.json', '[]')
        client = server.client(max_retries=0)
        assert client.exists('notebridge/notes/') is True
        assert client.exists('notebridge/notes/2024-W01.json') is True
        assert client.exists('notebridge/assets/') is False

        server.break_path('PROPFIND', 'notebridge/notes', 500)
        assert client.exists('notebridge/notes/') is False

    def test_ensure_collection(self):
        server = FakeWebDav()
        client = server.client()
        client.ensure_collection('notebridge')
        assert 'notebridge' in server.collections
        assert server.calls('MKCOL', 'notebridge') == 1

        # Existing collection is not created again
        client.ensure_collection('notebridge')
        assert server.calls('MKCOL', 'notebridge') == 1

    def test_ensure_collection_already_exists(self):
        server = FakeWebDav()
        server.collections.add('notebridge')
        server.break_path('PROPFIND', 'notebridge', 404)
        client = server.client()

        # Server says 405 Method Not Allowed for MKCOL on an existing collection
        client.ensure_collection('notebridge')
        assert server.calls('MKCOL', 'notebridge') == 1

    def test_ensure_collection_missing_parent(self):
        def handler(request):
            return httpx.Response(404 if request.method == 'PROPFIND' else 409)

        client = TestDavClient.mock_client(handler)
        with pytest.raises(ClientProtocolError) as e:
            client.ensure_collection('a/b')
        assert e.value.status_code == 409

    def test_list_entries(self):
        def handler(request):
            assert request.method == 'PROPFIND'
            assert request.headers['Depth'] == '1'
            return httpx.Response(207, content=MULTISTATUS)

        client = TestDavClient.mock_client(handler)
        entries = client.list_entries('notebridge/notes')
        assert [entry.name for entry in entries] == ['2024-W01.json', 'old notes']

        shard = entries[0]
        assert shard.is_collection is False
        assert shard.size == 42
        assert shard.last_modified == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
        assert str(shard) == 'File: 2024-W01.json'
        assert entries[1].is_collection is True

    def test_list_entries_keeps_child_named_like_parent(self):
        server = FakeWebDav()
        server.add_file('notebridge/notes/notes/2023-W52.json', '[]')
        server.add_file('notebridge/notes/2024-W01.json', '[]')
        client = server.client()

        entries = client.list_entries('notebridge/notes')
        assert sorted((entry.name, entry.is_collection) for entry in entries) == [
            ('2024-W01.json', False), ('notes', True)]

    def test_list_entries_invalid_listing(self):
        def handler(request):
            return httpx.Response(207, content=b'<html>Not WebDAV')

        client = TestDavClient.mock_client(handler)
        with pytest.raises(SerializationError):
            client.list_entries('notebridge/notes')

    def test_get_text_invalid_utf8(self):
        def handler(request):
            return httpx.Response(200, content=b'\xff\xfe\xfa')

        client = TestDavClient.mock_client(handler)
        with pytest.raises(SerializationError):
            client.get_text('notebridge/notes/2024-W01.json')

    def test_put_and_get(self):
        server = FakeWebDav()
        server.collections.add('notebridge')
        with server.client() as client:
            client.put_text('notebridge/hello.json', '["Grüße"]', content_type='application/json; charset=utf-8')
            client.put_binary('notebridge/a1', b'\x00\x01', 'image/png')
            assert client.get_text('notebridge/hello.json') == '["Grüße"]'
            assert client.get_binary('notebridge/a1') == b'\x00\x01'
        assert server.content_types['notebridge/a1'] == 'image/png'
        assert server.content_types['notebridge/hello.json'] == 'application/json; charset=utf-8'


class TestLiveDavClient:
    """
    Runs against a real WebDAV server configured with ``NOTEBRIDGE_TEST_URL``, ``NOTEBRIDGE_TEST_USERNAME`` and
    ``NOTEBRIDGE_TEST_PASSWORD``.
    """

    @pytest.mark.skipif(TEST_ENV != 'live', reason="Requires a WebDAV server")
    def test_round_trip(self):
        client = DavClient(config('NOTEBRIDGE_TEST_URL'), config('NOTEBRIDGE_TEST_USERNAME'),
                           config('NOTEBRIDGE_TEST_PASSWORD'))
        folder = 'notebridge-test-{}'.format(get_uuid())
        try:
            client.ensure_collection(folder)
            client.put_text('{}/shard.json'.format(folder), '[]')
            assert client.get_text('{}/shard.json'.format(folder)) == '[]'
            assert [entry.name for entry in client.list_entries(folder)] == ['shard.json']
            client.delete('{}/shard.json'.format(folder))
            assert client.list_entries(folder) == []
        finally:
            client.delete(folder + '/')
            client.close()
