"""
HTTP and HTTPS origins.

Requests are conditional: stored Last-Modified and ETag values are sent back
so that the server can answer 304 Not Modified. Every response's headers are
kept in a headers.txt artifact next to the body, which helps when working
out why a site is or isn't returning 304s.
"""
import io
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlsplit

import requests
from dateutil.tz import tzlocal

from webcache import config
from webcache.errors import ParseError, ProtocolError, UsageError
from webcache.fetch_result import FetchResult
from webcache.listeners import first_expiry_opinion
from webcache.origins import ResourceOrigin
from webcache.properties import CacheProperties
from webcache.storage import COPY_BUFFER_SIZE

logger = logging.getLogger(__name__)

HEADERS_FILE = 'headers.txt'

_HTTP_VERSIONS = {10: 'HTTP/1.0', 11: 'HTTP/1.1', 20: 'HTTP/2'}


class WebOrigin(ResourceOrigin):
    """A resource fetched with HTTP GET."""

    def __init__(self, url: str, timeout: Optional[float] = None, user_agent: Optional[str] = None):
        """
        Args:
            url: http or https URL
            timeout: Seconds before giving up on the server, see config.default_timeout()
            user_agent: User-Agent header, defaults to config.USER_AGENT

        Raises:
            UsageError: If the URL is not http or https, or has no host
        """
        parts = urlsplit(url)
        if parts.scheme not in ('http', 'https'):
            raise UsageError(f'{type(self).__name__} should only be used for http and https, '
                             f'not suitable for {url}')
        if not parts.hostname:
            raise UsageError(f'Invalid URL, no host: {url}')

        self.url = url
        self._parts = parts
        self.timeout = timeout if timeout is not None else config.default_timeout()
        self.user_agent = user_agent or config.USER_AGENT

    @property
    def name(self) -> str:
        return self.url

    @property
    def cache_dir(self) -> str:
        # e.g. "www.site.com/Spoilers/?d=troops"; storage tidies awkward characters
        cache_dir = self._parts.hostname + self._parts.path
        if self._parts.query:
            cache_dir += '?' + self._parts.query
        return cache_dir

    def is_expired(self, resource, context) -> bool:
        expired = first_expiry_opinion(resource.listeners, resource, context)
        if expired is None:
            # If this is intended, the warning can be avoided with expiry.never()
            logger.warning('Resource will never expire because no listeners return a value '
                           'for is_expired() %s', resource.name)
            return False
        return expired

    def fetch(self, resource) -> FetchResult:
        properties = resource.properties

        headers = {'User-Agent': self.user_agent}
        if properties.last_modified is not None:
            headers['If-Modified-Since'] = properties.last_modified
        if properties.etag is not None:
            # Weak validation is fine, only the content matters, not the bytes
            etag = properties.etag
            headers['If-None-Match'] = etag if etag.startswith('W/') else 'W/' + etag

        logger.debug('GET %s with %s', self.url, headers)
        response = requests.get(self.url, headers=headers, stream=True, timeout=self.timeout)

        try:
            self._record_headers(resource, response)
        except Exception:
            response.close()
            raise
        # Whole seconds, the same as the persisted value
        properties.timestamp = datetime.now(tzlocal()).replace(microsecond=0)

        if response.status_code == 200:
            return FetchResult.for_stream(_ContentStream(response), on_close=response.close)

        response.close()
        if response.status_code == 304:
            return FetchResult.not_modified()

        raise ProtocolError(response.status_code, response.reason, self.url)

    def _record_headers(self, resource, response) -> None:
        version = _HTTP_VERSIONS.get(getattr(response.raw, 'version', None), 'HTTP/1.1')
        lines = [f'{version} {response.status_code} {response.reason}']
        for header_name, header_value in response.headers.items():
            lines.append(f'{header_name}: {header_value}')
            _update_properties(resource.properties, header_name, header_value)

        resource.artifact(HEADERS_FILE).set_content('\n'.join(lines) + '\n')

    def __repr__(self):
        return f'WebOrigin({self.url!r})'


class _ContentStream(io.RawIOBase):
    """
    Readable stream over Response.iter_content().

    iter_content() undoes any gzip transfer encoding, and converts urllib3
    errors part way through the body into requests exceptions, which are
    OSErrors. Reading response.raw directly would do neither.
    """

    def __init__(self, response):
        self._chunks = response.iter_content(COPY_BUFFER_SIZE)
        self._pending = b''

    def readable(self):
        return True

    def readinto(self, buffer):
        while not self._pending:
            chunk = next(self._chunks, None)
            if chunk is None:
                return 0
            self._pending = chunk
        count = min(len(buffer), len(self._pending))
        buffer[:count] = self._pending[:count]
        self._pending = self._pending[count:]
        return count


def _update_properties(properties: CacheProperties, header_name: str, header_value: str) -> None:
    header_name = header_name.lower()
    if header_name == 'content-type':
        # Content-Type: text/html;charset=UTF-8
        content_type, separator, parameter = header_value.partition(';')
        if separator:
            key, equals, charset = parameter.partition('=')
            if key.strip().lower() != 'charset' or not equals:
                raise ParseError(f'Unexpected Content-Type parameter: {header_value!r}')
            try:
                properties.charset = charset.strip().strip('"')
            except UsageError as e:
                raise ParseError(f'Unknown charset in Content-Type: {header_value!r}') from e
        properties.content_type = content_type.strip()
    elif header_name == 'last-modified':
        properties.last_modified = header_value
    elif header_name == 'etag':
        properties.etag = header_value
