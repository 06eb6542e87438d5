"""
Outbound HTTP for intel feeds.

``fetch_with_timeout`` wraps requests with a hard wall-clock deadline
and turns every outcome into a ``FetchResult`` value:

- 2xx: parsed body (JSON when the upstream says so, text otherwise)
- non-2xx: ``HTTP <status>: <reason>`` with the upstream status
- deadline exceeded: ``Request timeout after <n>ms`` with status 408
- any other transport failure: the error message with status 500

Nothing raised by requests escapes this module. Each call opens its
own session, so a timeout closes only that call's connection.

Query strings can carry API keys, so they never appear in log lines
or error messages.
"""

import json
import logging
import socket
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Union
from urllib.parse import urlencode, urlsplit, urlunsplit

import requests
from requests.auth import AuthBase
from requests.structures import CaseInsensitiveDict
from urllib3.util import Timeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10000
DEFAULT_HEADERS = {'Content-Type': 'application/json'}

_CHUNK_SIZE = 8 * 1024


class HttpMethod(str, Enum):
    GET = 'GET'
    POST = 'POST'
    PUT = 'PUT'
    DELETE = 'DELETE'


@dataclass(frozen=True)
class FetchOptions:
    """
    Per-request options.

    Attributes:
        timeout: Hard deadline for the whole request in milliseconds.
        headers: Extra headers, merged over ``Content-Type: application/json``.
        method: HTTP verb.
        body: Raw ``str``/``bytes``, form fields as a mapping of str to str
              when the caller sets a form content type, or any other
              JSON-serializable value.
        auth: requests auth handler, e.g. ``HTTPBasicAuth``.
    """
    timeout: int = DEFAULT_TIMEOUT_MS
    headers: Mapping[str, str] = field(default_factory=dict)
    method: HttpMethod = HttpMethod.GET
    body: Optional[Any] = None
    auth: Optional[AuthBase] = None


@dataclass
class FetchResult:
    """Normalized outcome of a fetch. Check ``ok`` before using ``data``."""
    status: int
    data: Any = None
    error: Optional[str] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result = {'status': self.status}
        if self.data is not None:
            result['data'] = self.data
        if self.error is not None:
            result['error'] = self.error
        return result


class _DeadlineExceeded(Exception):
    """Raised internally when the body transfer outlives the deadline."""


class _Watchdog:
    """
    Aborts a streamed response once the deadline passes.

    urllib3's total timeout bounds connect plus headers. Socket read
    timeouts restart on every byte, so the body is bounded by shutting
    the socket down from a timer thread, which wakes any blocked read.
    """

    def __init__(self, seconds: float):
        self.fired = False
        self._response: Optional[requests.Response] = None
        self._lock = threading.Lock()
        self._timer = threading.Timer(seconds, self._fire)
        self._timer.daemon = True

    def __enter__(self) -> '_Watchdog':
        self._timer.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._timer.cancel()

    def watch(self, response: requests.Response) -> None:
        with self._lock:
            self._response = response
            fired = self.fired
        if fired:
            _shutdown(response)

    def _fire(self) -> None:
        with self._lock:
            self.fired = True
            response = self._response
        if response is not None:
            _shutdown(response)


def _shutdown(response: requests.Response) -> None:
    connection = getattr(response.raw, 'connection', None)
    sock = getattr(connection, 'sock', None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        # Socket already closed by the reading thread
        logger.debug(f'Socket shutdown skipped: {e}')


def _safe_url(url: str) -> str:
    """URL without query or fragment, for logs."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, '', ''))


def _scrub(message: str, url: str) -> str:
    query = urlsplit(url).query
    return message.replace(query, '<redacted>') if query else message


def _encode_body(body: Any, headers: Mapping[str, str]) -> Optional[Union[str, bytes]]:
    if body is None or isinstance(body, (str, bytes)):
        return body
    content_type = headers.get('Content-Type', '')
    if isinstance(body, Mapping) and 'application/x-www-form-urlencoded' in content_type:
        return urlencode(list(body.items()))
    return json.dumps(body)


def _read_body(response: requests.Response, watchdog: _Watchdog) -> bytes:
    chunks = []
    try:
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            if watchdog.fired:
                raise _DeadlineExceeded()
            chunks.append(chunk)
    except requests.exceptions.RequestException:
        # Shutting the socket down surfaces as a broken or truncated read
        if watchdog.fired:
            raise _DeadlineExceeded()
        raise
    if watchdog.fired:
        raise _DeadlineExceeded()
    return b''.join(chunks)


def _decode(response: requests.Response, raw: bytes) -> Any:
    content_type = response.headers.get('Content-Type', '')
    if 'application/json' in content_type:
        return json.loads(raw) if raw else None
    # requests assumes ISO-8859-1 for text/* without a charset
    encoding = response.encoding if 'charset=' in content_type.lower() else 'utf-8'
    return raw.decode(encoding or 'utf-8', errors='replace')


def fetch_with_timeout(url: str, options: Optional[FetchOptions] = None) -> FetchResult:
    """
    Fetch ``url`` with a hard timeout and normalized error handling.

    Connect and header wait share one total budget. The body is
    streamed while a watchdog timer shuts the socket down when the
    deadline passes.

    Never raises.
    """
    options = options or FetchOptions()
    timeout_ms = options.timeout
    timeout_s = timeout_ms / 1000
    method = getattr(options.method, 'value', options.method)
    headers = CaseInsensitiveDict(DEFAULT_HEADERS)
    headers.update(options.headers)
    log_url = _safe_url(url)

    watchdog = _Watchdog(timeout_s)
    response: Optional[requests.Response] = None

    try:
        method = HttpMethod(method).value
        body = _encode_body(options.body, headers)
        with watchdog, requests.Session() as session:
            response = session.request(
                method,
                url,
                headers=headers,
                data=body,
                auth=options.auth,
                timeout=Timeout(total=timeout_s),
                stream=True,
            )
            watchdog.watch(response)

            if not 200 <= response.status_code < 300:
                logger.warning(f'{method} {log_url} failed: HTTP {response.status_code}')
                return FetchResult(
                    status=response.status_code,
                    error=f'HTTP {response.status_code}: {response.reason}',
                )

            raw = _read_body(response, watchdog)
            data = _decode(response, raw)
            return FetchResult(status=response.status_code, data=data)

    except (requests.exceptions.Timeout, _DeadlineExceeded):
        logger.warning(f'{method} {log_url} timed out after {timeout_ms}ms')
        return FetchResult(status=408, error=f'Request timeout after {timeout_ms}ms')
    except Exception as e:
        if watchdog.fired:
            logger.warning(f'{method} {log_url} timed out after {timeout_ms}ms')
            return FetchResult(status=408, error=f'Request timeout after {timeout_ms}ms')
        message = _scrub(str(e), url) or 'Network error'
        logger.error(f'{method} {log_url} failed: {message}')
        return FetchResult(status=500, error=message)
    finally:
        if response is not None:
            response.close()



def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def build_url(base: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Append query parameters to ``base``.

    Existing path and query are kept; new pairs are appended in the
    mapping's iteration order, form-urlencoded.
    """
    if not params:
        return base

    parts = urlsplit(base)
    encoded = urlencode([(str(k), _stringify(v)) for k, v in params.items()])
    query = f'{parts.query}&{encoded}' if parts.query else encoded
    path = parts.path or '/'
    return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))


@dataclass
class ParamValidation:
    valid: bool
    missing: Optional[List[str]] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {'valid': True}
        return {'valid': False, 'missing': self.missing}


def validate_params(params: Mapping[str, Any], required: Iterable[str]) -> ParamValidation:
    """
    Check that every required name is present in ``params``.

    An empty value still counts as present. Missing names keep the order
    of ``required``.
    """
    missing = [name for name in required if name not in params]
    if missing:
        return ParamValidation(valid=False, missing=missing)
    return ParamValidation(valid=True)
