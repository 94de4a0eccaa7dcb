"""Pytest fixtures shared across the test suite."""

import io
import json
from collections import defaultdict, deque
from threading import Lock
from urllib.error import HTTPError, URLError

import pytest

from catalog.auth import CredentialCache
from catalog.service import CatalogService, set_catalog_service
from catalog.transport import CatalogTransport

BASE_URL = 'https://igdb.test/v4'
TOKEN_URL = 'https://id.test/oauth2/token'


class Fail:
    """Queued upstream failure; a fresh ``HTTPError`` is raised per use."""

    def __init__(self, code, payload=None, headers=None):
        self.code = code
        self.payload = payload
        self.headers = headers or {}

    def build(self, url):
        body = b''
        if self.payload is not None:
            body = json.dumps(self.payload).encode('utf-8')
        return HTTPError(url, self.code, f'HTTP {self.code}', self.headers, io.BytesIO(body))


class TimedOut:
    """Queued socket timeout."""

    def build(self, url):
        return URLError(TimeoutError('timed out'))


class FakeResponse:
    def __init__(self, payload):
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode('utf-8')

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class FakeUpstream:
    """Stand-in for ``urlopen`` that answers by endpoint and records calls.

    Responses queued with :meth:`on` are served in order; the last one keeps
    being served once the queue is down to a single entry. A callable
    response receives the request body and returns the payload.
    """

    def __init__(self):
        self._lock = Lock()
        self._responses = defaultdict(deque)
        self.calls = []
        self.tokens_issued = 0

    def on(self, endpoint, *responses):
        with self._lock:
            self._responses[endpoint].extend(responses)
        return self

    def calls_to(self, endpoint):
        return [call for call in self.calls if call['endpoint'] == endpoint]

    @property
    def catalog_calls(self):
        return [call for call in self.calls if call['endpoint'] != 'token']

    def __call__(self, request, timeout=None):
        url = request.full_url
        if url.startswith(TOKEN_URL):
            endpoint = 'token'
        else:
            endpoint = url[len(BASE_URL) + 1:]
        body = (request.data or b'').decode('utf-8')
        with self._lock:
            self.calls.append(
                {
                    'endpoint': endpoint,
                    'body': body,
                    'authorization': request.get_header('Authorization'),
                    'timeout': timeout,
                }
            )
            queue = self._responses.get(endpoint)
            if queue:
                response = queue.popleft() if len(queue) > 1 else queue[0]
            elif endpoint == 'token':
                self.tokens_issued += 1
                response = {'access_token': f'token-{self.tokens_issued}', 'expires_in': 3600}
            else:
                response = []
        if callable(response):
            response = response(body)
        if isinstance(response, (Fail, TimedOut)):
            raise response.build(url)
        return FakeResponse(response)


class FakeClock:
    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials(upstream, sleeps, clock):
    return CredentialCache(
        client_id='client-id',
        client_secret='client-secret',
        token_url=TOKEN_URL,
        opener=upstream,
        sleep=sleeps.append,
        clock=clock,
    )


@pytest.fixture
def transport(credentials, upstream, sleeps):
    return CatalogTransport(
        credentials,
        base_url=BASE_URL,
        user_agent='catalog-tests',
        opener=upstream,
        sleep=sleeps.append,
    )


@pytest.fixture
def service(transport, sleeps):
    return CatalogService(transport=transport, sleep=sleeps.append)


@pytest.fixture(autouse=True)
def reset_catalog_service():
    set_catalog_service(None)
    yield
    set_catalog_service(None)
