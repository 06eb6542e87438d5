"""
Tests for the timeout-bounded fetch wrapper and URL helpers.
"""

import json
import logging
import socket
import threading
import time
from unittest.mock import patch

import pytest
import requests
from requests.auth import HTTPBasicAuth

from intelboard.fetch import (
    FetchOptions,
    FetchResult,
    HttpMethod,
    ParamValidation,
    build_url,
    fetch_with_timeout,
    validate_params,
)
from tests.conftest import Route


def _closed_port() -> int:
    sock = socket.socket()
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestFetchWithTimeout:
    """Outcomes against a local upstream server."""

    def test_json_response_is_parsed(self, upstream):
        upstream.routes['/data'] = Route({'a': 1})

        result = fetch_with_timeout(f'{upstream.url}/data')

        assert result == FetchResult(data={'a': 1}, status=200)
        assert result.ok

    def test_json_content_type_with_charset(self, upstream):
        upstream.routes['/data'] = Route([1, 2, 3], content_type='application/json; charset=utf-8')
        assert fetch_with_timeout(f'{upstream.url}/data').data == [1, 2, 3]

    def test_text_response_is_returned_raw(self, upstream):
        upstream.routes['/tle'] = Route('ISS (ZARYA)\n1 25544U\n', content_type='text/plain; charset=utf-8')

        result = fetch_with_timeout(f'{upstream.url}/tle')

        assert result.status == 200
        assert result.data == 'ISS (ZARYA)\n1 25544U\n'

    def test_json_text_not_parsed_without_json_content_type(self, upstream):
        upstream.routes['/data'] = Route('{"a": 1}', content_type='text/plain; charset=utf-8')
        assert fetch_with_timeout(f'{upstream.url}/data').data == '{"a": 1}'

    def test_http_error_keeps_status(self, upstream):
        result = fetch_with_timeout(f'{upstream.url}/nowhere')

        assert result.status == 404
        assert result.error == 'HTTP 404: Not Found'
        assert result.data is None
        assert not result.ok

    def test_server_error_status(self, upstream):
        upstream.routes['/broken'] = Route({'detail': 'boom'}, status=503)

        result = fetch_with_timeout(f'{upstream.url}/broken')

        assert result.status == 503
        assert result.error == 'HTTP 503: Service Unavailable'
        assert result.data is None

    def test_slow_response_times_out(self, upstream):
        upstream.routes['/slow'] = Route({'a': 1}, delay=2)

        started = time.monotonic()
        result = fetch_with_timeout(f'{upstream.url}/slow', FetchOptions(timeout=200))
        elapsed = time.monotonic() - started

        assert result.status == 408
        assert result.error == 'Request timeout after 200ms'
        assert '200' in result.error
        assert result.data is None
        assert elapsed < 1.5

    def test_slow_body_times_out(self, upstream):
        upstream.routes['/dribble'] = Route('x' * 6, content_type='text/plain', dribble=0.6)

        started = time.monotonic()
        result = fetch_with_timeout(f'{upstream.url}/dribble', FetchOptions(timeout=1000))
        elapsed = time.monotonic() - started

        assert result.status == 408
        assert result.error == 'Request timeout after 1000ms'
        assert result.data is None
        # Each byte arrives well inside the socket read timeout
        assert elapsed < 1.8

    def test_slow_headers_bounded_by_total_budget(self, upstream):
        upstream.routes['/slow'] = Route({'a': 1}, delay=0.5)

        started = time.monotonic()
        result = fetch_with_timeout(f'{upstream.url}/slow', FetchOptions(timeout=400))
        elapsed = time.monotonic() - started

        assert result.status == 408
        assert elapsed < 0.9

    def test_text_without_charset_is_utf8(self, upstream):
        upstream.routes['/city'] = Route('Zürich', content_type='text/plain')
        assert fetch_with_timeout(f'{upstream.url}/city').data == 'Zürich'

    def test_declared_charset_is_honored(self, upstream):
        upstream.routes['/city'] = Route('Zürich'.encode('latin-1'), content_type='text/plain; charset=ISO-8859-1')
        assert fetch_with_timeout(f'{upstream.url}/city').data == 'Zürich'

    def test_basic_auth(self, upstream):
        upstream.routes['/private'] = Route({})

        fetch_with_timeout(f'{upstream.url}/private', FetchOptions(auth=HTTPBasicAuth('name', 'token')))

        assert upstream.requests[-1]['headers']['Authorization'] == 'Basic bmFtZTp0b2tlbg=='

    def test_query_string_kept_out_of_logs(self, upstream, caplog):
        with caplog.at_level(logging.WARNING):
            result = fetch_with_timeout(f'{upstream.url}/host?key=sekret')

        assert result.status == 404
        assert f'{upstream.url}/host' in caplog.text
        assert 'sekret' not in caplog.text

    def test_query_string_kept_out_of_errors(self, caplog):
        with caplog.at_level(logging.ERROR):
            result = fetch_with_timeout(
                f'http://127.0.0.1:{_closed_port()}/host?key=sekret', FetchOptions(timeout=2000),
            )

        assert result.status == 500
        assert 'sekret' not in result.error
        assert 'sekret' not in caplog.text

    def test_connection_refused_is_network_error(self):
        result = fetch_with_timeout(f'http://127.0.0.1:{_closed_port()}/x', FetchOptions(timeout=2000))

        assert result.status == 500
        assert result.error
        assert result.data is None

    def test_invalid_url_is_network_error(self):
        result = fetch_with_timeout('not a url')
        assert result.status == 500
        assert result.error

    def test_invalid_json_body_is_reported(self, upstream):
        upstream.routes['/bad'] = Route('{not json', content_type='application/json')

        result = fetch_with_timeout(f'{upstream.url}/bad')

        assert result.status == 500
        assert result.error

    def test_empty_json_body(self, upstream):
        upstream.routes['/empty'] = Route(b'', content_type='application/json')
        result = fetch_with_timeout(f'{upstream.url}/empty')
        assert result == FetchResult(status=200, data=None)

    def test_default_content_type_header(self, upstream):
        upstream.routes['/echo'] = Route({})

        fetch_with_timeout(f'{upstream.url}/echo')

        assert upstream.requests[-1]['headers']['Content-Type'] == 'application/json'
        assert upstream.requests[-1]['method'] == 'GET'

    def test_caller_headers_override_defaults(self, upstream):
        upstream.routes['/echo'] = Route({})

        fetch_with_timeout(
            f'{upstream.url}/echo',
            FetchOptions(headers={'Content-Type': 'text/plain', 'X-Api-Key': 'secret'}),
        )

        headers = upstream.requests[-1]['headers']
        assert headers['Content-Type'] == 'text/plain'
        assert headers['X-Api-Key'] == 'secret'

    def test_post_with_json_body(self, upstream):
        upstream.routes['/submit'] = Route({'ok': True}, status=201)

        result = fetch_with_timeout(
            f'{upstream.url}/submit',
            FetchOptions(method=HttpMethod.POST, body={'query': 'port:22'}),
        )

        assert result == FetchResult(status=201, data={'ok': True})
        sent = upstream.requests[-1]
        assert sent['method'] == 'POST'
        assert json.loads(sent['body']) == {'query': 'port:22'}

    def test_put_with_string_body(self, upstream):
        upstream.routes['/item'] = Route({})

        fetch_with_timeout(f'{upstream.url}/item', FetchOptions(method='PUT', body='raw'))

        assert upstream.requests[-1]['method'] == 'PUT'
        assert upstream.requests[-1]['body'] == b'raw'

    def test_form_body_is_urlencoded(self, upstream):
        upstream.routes['/form'] = Route({})

        fetch_with_timeout(
            f'{upstream.url}/form',
            FetchOptions(
                method=HttpMethod.POST,
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                body={'a': '1', 'b': 'x y'},
            ),
        )

        assert upstream.requests[-1]['body'] == b'a=1&b=x+y'

    def test_delete_method(self, upstream):
        upstream.routes['/item'] = Route({})
        result = fetch_with_timeout(f'{upstream.url}/item', FetchOptions(method=HttpMethod.DELETE))
        assert result.status == 200
        assert upstream.requests[-1]['method'] == 'DELETE'

    def test_unsupported_method_is_reported_not_raised(self):
        result = fetch_with_timeout('http://127.0.0.1/', FetchOptions(method='PATCH'))
        assert result.status == 500
        assert result.error

    def test_unexpected_exception_never_escapes(self):
        with patch('intelboard.fetch.requests.Session.request', side_effect=RuntimeError('boom')):
            result = fetch_with_timeout('http://example.invalid/')
        assert result == FetchResult(status=500, error='boom')

    def test_requests_timeout_maps_to_408(self):
        with patch('intelboard.fetch.requests.Session.request',
                   side_effect=requests.exceptions.ConnectTimeout('connect timed out')):
            result = fetch_with_timeout('http://example.invalid/', FetchOptions(timeout=1234))
        assert result == FetchResult(status=408, error='Request timeout after 1234ms')

    def test_timeout_of_one_call_does_not_affect_another(self, upstream):
        upstream.routes['/slow'] = Route({'slow': True}, delay=2)
        upstream.routes['/fast'] = Route({'fast': True}, delay=0.3)
        results = {}

        def call(name, path, timeout):
            results[name] = fetch_with_timeout(f'{upstream.url}{path}', FetchOptions(timeout=timeout))

        threads = [
            threading.Thread(target=call, args=('slow', '/slow', 150)),
            threading.Thread(target=call, args=('fast', '/fast', 5000)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results['slow'].status == 408
        assert results['fast'] == FetchResult(status=200, data={'fast': True})


class TestFetchOptions:

    def test_defaults(self):
        options = FetchOptions()
        assert options.timeout == 10000
        assert options.method == HttpMethod.GET
        assert options.headers == {}
        assert options.body is None

    def test_options_are_immutable(self):
        with pytest.raises(Exception):
            FetchOptions().timeout = 5


class TestBuildUrl:

    def test_no_params_returns_base(self):
        assert build_url('https://x/y') == 'https://x/y'
        assert build_url('https://x/y', {}) == 'https://x/y'
        assert build_url('https://x/y', None) == 'https://x/y'

    def test_appends_params_in_order(self):
        assert build_url('https://x/y', {'a': 1, 'b': 'q'}) == 'https://x/y?a=1&b=q'

    def test_preserves_existing_query(self):
        assert build_url('https://x/y?z=0', {'a': 1}) == 'https://x/y?z=0&a=1'

    def test_percent_encodes_keys_and_values(self):
        url = build_url('https://x/search', {'q': 'port:22 country:"US"', 'a&b': 'c/d'})
        assert url == 'https://x/search?q=port%3A22+country%3A%22US%22&a%26b=c%2Fd'

    def test_booleans_and_floats(self):
        url = build_url('https://x/y', {'on': True, 'off': False, 'lat': 45.5})
        assert url == 'https://x/y?on=true&off=false&lat=45.5'

    def test_bare_host_gets_root_path(self):
        assert build_url('https://x', {'a': 1}) == 'https://x/?a=1'


class TestValidateParams:

    def test_all_present(self):
        assert validate_params({'a': '1', 'b': '2'}, ['a', 'b']) == ParamValidation(valid=True)

    def test_missing_reported_in_required_order(self):
        result = validate_params({'a': '1'}, ['c', 'a', 'b'])
        assert result == ParamValidation(valid=False, missing=['c', 'b'])
        assert result.to_dict() == {'valid': False, 'missing': ['c', 'b']}

    def test_empty_value_counts_as_present(self):
        assert validate_params({'a': ''}, ['a']).valid

    def test_no_required_names(self):
        assert validate_params({}, []).to_dict() == {'valid': True}

    def test_works_with_request_args(self):
        from werkzeug.datastructures import MultiDict

        result = validate_params(MultiDict([('a', '1')]), ['a', 'b'])
        assert result == ParamValidation(valid=False, missing=['b'])
