import pytest

from catalog.errors import UpstreamError, UpstreamRateLimited, UpstreamTimeout
from catalog.query import CompiledQuery
from catalog.transport import CatalogTransport

from conftest import BASE_URL, Fail, TimedOut

QUERY = CompiledQuery('games', 'fields id,name; limit 5;')
COUNT_QUERY = CompiledQuery('games/count', 'where rating >= 69;')


def test_execute_posts_query_with_auth_headers(transport, upstream):
    upstream.on('games', [{'id': 1, 'name': 'Halo'}, 'junk'])

    records = transport.execute(QUERY)

    assert records == [{'id': 1, 'name': 'Halo'}]
    call = upstream.calls_to('games')[0]
    assert call['body'] == 'fields id,name; limit 5;'
    assert call['authorization'] == 'Bearer token-1'
    assert call['timeout'] == 10.0


def test_rate_limit_retries_with_exponential_backoff(transport, upstream, sleeps):
    upstream.on('games', Fail(429), Fail(429), [{'id': 7, 'name': 'Doom'}])

    records = transport.execute(QUERY)

    assert records == [{'id': 7, 'name': 'Doom'}]
    assert sleeps == [1.0, 2.0]
    assert len(upstream.calls_to('games')) == 3


def test_retry_after_header_extends_delay(transport, upstream, sleeps):
    upstream.on('games', Fail(429, headers={'Retry-After': '5'}), [])

    transport.execute(QUERY)

    assert sleeps == [5.0]


def test_retry_after_header_is_capped(transport, upstream, sleeps):
    upstream.on('games', Fail(429, headers={'Retry-After': '3600'}), [{'id': 1, 'name': 'Halo'}])

    records = transport.execute(QUERY)

    assert records == [{'id': 1, 'name': 'Halo'}]
    assert sleeps == [10.0]


def test_retry_after_cap_is_configurable(credentials, upstream, sleeps):
    transport = CatalogTransport(
        credentials,
        base_url=BASE_URL,
        opener=upstream,
        sleep=sleeps.append,
        max_retry_after=3,
    )
    upstream.on('games', Fail(429, headers={'Retry-After': '120'}), [])

    transport.execute(QUERY)

    assert sleeps == [3]


def test_rate_limit_exhaustion_raises(transport, upstream, sleeps):
    upstream.on('games', Fail(429, {'message': 'Too Many Requests'}))

    with pytest.raises(UpstreamRateLimited) as excinfo:
        transport.execute(QUERY)

    assert excinfo.value.status == 429
    assert excinfo.value.detail == 'Too Many Requests'
    assert sleeps == [1.0, 2.0, 4.0]
    assert len(upstream.calls_to('games')) == 4


def test_other_errors_are_not_retried(transport, upstream, sleeps):
    upstream.on('games', Fail(500, [{'title': 'Syntax Error', 'cause': 'bad where'}]))

    with pytest.raises(UpstreamError) as excinfo:
        transport.execute(QUERY)

    assert excinfo.value.status == 500
    assert excinfo.value.detail == 'bad where'
    assert sleeps == []
    assert len(upstream.calls_to('games')) == 1


def test_unauthorized_invalidates_credential(transport, upstream):
    upstream.on('games', Fail(401))

    with pytest.raises(UpstreamError):
        transport.execute(QUERY)

    assert transport.credentials.credential is None


def test_headers_are_fetched_for_every_attempt(transport, upstream, clock):
    def rate_limited_then_expire(body):
        clock.advance(4000)
        return Fail(429)

    upstream.on('games', rate_limited_then_expire, [])

    transport.execute(QUERY)

    authorizations = [call['authorization'] for call in upstream.calls_to('games')]
    assert authorizations == ['Bearer token-1', 'Bearer token-2']


def test_timeout_raises_without_retry(transport, upstream, sleeps):
    upstream.on('games', TimedOut())

    with pytest.raises(UpstreamTimeout) as excinfo:
        transport.execute(QUERY, timeout=3)

    assert excinfo.value.status == 504
    assert sleeps == []
    assert upstream.calls_to('games')[0]['timeout'] == 3


def test_timeouts_can_be_retried(transport, upstream, sleeps):
    upstream.on('games/count', TimedOut(), {'count': 12})

    assert transport.count(COUNT_QUERY, retry_timeouts=True) == 12
    assert sleeps == [1.0]


def test_count_reads_count_field(transport, upstream):
    upstream.on('games/count', {'count': 345})

    assert transport.count(COUNT_QUERY) == 345


def test_count_defaults_to_zero_when_missing(transport, upstream):
    upstream.on('games/count', {})

    assert transport.count(COUNT_QUERY) == 0


def test_invalid_json_raises_upstream_error(transport, upstream):
    upstream.on('games', b'<html>oops</html>')

    with pytest.raises(UpstreamError):
        transport.execute(QUERY)
