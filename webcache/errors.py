"""
Exceptions raised by the web cache.

Construction-time mistakes are UsageErrors. Corrupt cache files and malformed
server responses are ParseErrors. Failures talking to an origin surface as
ProtocolError or FetchError. None of these are retried internally.
"""


class WebCacheError(Exception):
    """Base class for all web cache errors."""


class UsageError(WebCacheError, ValueError):
    """Invalid arguments, such as a bad URL scheme or a too-short wait."""


class ParseError(WebCacheError):
    """Malformed persisted properties or malformed response headers."""


class ProtocolError(WebCacheError):
    """The origin answered a conditional request with an unexpected status."""

    def __init__(self, status_code: int, reason: str, url: str):
        super().__init__(f'Unexpected response: {status_code} {reason} from {url}')
        self.status_code = status_code
        self.reason = reason
        self.url = url


class FetchError(WebCacheError):
    """An I/O failure while fetching an external resource.

    The original OSError (including requests exceptions) is chained as
    __cause__.
    """
