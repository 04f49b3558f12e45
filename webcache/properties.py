"""
Properties recorded for each cached resource.

The properties file looks like JSON, but it is written and read by hand so
that keys always appear in the same order and unrecognised keys are rejected
rather than silently dropped. Every value is a quoted string, for example:

    {
      "Body-Base": "body",
      "Body-Extension": ".json",
      "Content-Type": "application/json",
      "Charset": "UTF-8",
      "Last-Modified": "Fri, 25 Jul 2025 07:03:11 GMT",
      "ETag": "W/\\"424a25-Ie0CoPkr9tV7mpas7QYK1BcjBrs\\"",
      "Timestamp": "Sat, 26 Jul 2025 10:04:40 -0500"
    }
"""
import codecs
import email.utils
import re
from datetime import datetime, timedelta, timezone
from typing import IO, Iterator, Optional, Tuple

from webcache.errors import ParseError, UsageError

BODY_BASE_KEY = 'Body-Base'

# Appended to cache file names so that an application can be associated with
# the cached body. Always starts with a dot, like ".json".
BODY_EXTENSION_KEY = 'Body-Extension'

CONTENT_TYPE_KEY = 'Content-Type'
CHARSET_KEY = 'Charset'

# Value of the Last-Modified response header. Sent back as If-Modified-Since
# so that the server can answer 304 Not Modified.
LAST_MODIFIED_KEY = 'Last-Modified'

ETAG_KEY = 'ETag'

# When the resource was last checked (web) or last modified (files).
TIMESTAMP_KEY = 'Timestamp'

DEFAULT_BODY_BASE = 'body'

_TOKEN_RE = re.compile(r'\s*(?:([{}:,])|"((?:[^"\\]|\\.)*)"|(\S))', re.DOTALL)
_ESCAPE_RE = re.compile(r'\\(.)', re.DOTALL)
_EOF = ('EOF', None)


def format_timestamp(value: datetime) -> str:
    """Format a timezone aware datetime as an RFC 1123 date.

    Zero offsets are written as GMT, other offsets numerically, e.g.
    "Sat, 26 Jul 2025 10:04:40 -0500". Sub-second precision is dropped.
    """
    offset = value.utcoffset()
    if offset is None:
        raise UsageError(f'Timestamp must be timezone aware: {value!r}')
    if offset == timedelta(0):
        return email.utils.format_datetime(value.astimezone(timezone.utc), usegmt=True)
    return email.utils.format_datetime(value)


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 1123 date written by format_timestamp()."""
    try:
        value = email.utils.parsedate_to_datetime(text)
    except (TypeError, ValueError) as e:
        raise ParseError(f'Invalid timestamp: {text!r}') from e
    if value.tzinfo is None:
        # "-0000" means UTC with unknown local offset
        value = value.replace(tzinfo=timezone.utc)
    return value


def _tokenize(text: str) -> Iterator[Tuple[str, Optional[str]]]:
    pos = 0
    while True:
        mo = _TOKEN_RE.match(text, pos)
        if mo is None:
            return
        pos = mo.end()
        punctuation, quoted, other = mo.groups()
        if punctuation:
            yield punctuation, None
        elif quoted is not None:
            yield '"', _ESCAPE_RE.sub(r'\1', quoted)
        else:
            raise ParseError(f'Unexpected character {other!r} at offset {mo.start(3)}')


class CacheProperties:
    """Freshness and identity metadata for one cached external resource."""

    def __init__(self):
        self.body_base: Optional[str] = None
        self._body_extension: Optional[str] = None
        self.content_type: Optional[str] = None
        self._charset: Optional[str] = None
        self.last_modified: Optional[str] = None
        self.etag: Optional[str] = None
        self.timestamp: Optional[datetime] = None

    @classmethod
    def new_with_defaults(cls) -> 'CacheProperties':
        properties = cls()
        properties.body_base = DEFAULT_BODY_BASE
        return properties

    @classmethod
    def load(cls, stream: IO[bytes]) -> 'CacheProperties':
        """Read properties from a binary stream.

        Raises:
            ParseError: If the content is not a well formed properties file
        """
        properties = cls()
        properties.read(stream)
        return properties

    @classmethod
    def loads(cls, text: str) -> 'CacheProperties':
        properties = cls()
        properties.read_text(text)
        return properties

    @property
    def body_extension(self) -> Optional[str]:
        return self._body_extension

    @body_extension.setter
    def body_extension(self, extension: Optional[str]) -> None:
        if extension is not None and not extension.startswith('.'):
            raise UsageError(f'Extension should start with a dot: {extension!r}')
        self._body_extension = extension

    @property
    def charset(self) -> Optional[str]:
        """Charset name, or None when unknown. Never guess a default."""
        return self._charset

    @charset.setter
    def charset(self, name: Optional[str]) -> None:
        if name is not None:
            try:
                codecs.lookup(name)
            except LookupError as e:
                raise UsageError(f'Unknown charset: {name!r}') from e
        self._charset = name

    def body_name(self, suffix: Optional[str] = None) -> str:
        """Name of the cached body, e.g. "body.json" or "body_pretty.json"."""
        name = self.body_base
        if suffix is not None:
            name += '_' + suffix
        if self.body_extension is not None:
            name += self.body_extension
        return name

    def read(self, stream: IO[bytes]) -> None:
        try:
            text = stream.read().decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseError('Properties are not valid UTF-8') from e
        self.read_text(text)

    def read_text(self, text: str) -> None:
        tokens = _tokenize(text)

        def expect(kind):
            token = next(tokens, _EOF)
            if token[0] != kind:
                raise ParseError(f"Expected '{kind}', but was {token[0]!r}")
            return token[1]

        expect('{')
        while True:
            key = expect('"')
            expect(':')
            value = expect('"')
            self._read_value(key, value)

            kind = next(tokens, _EOF)[0]
            if kind == '}':
                break
            if kind != ',':
                raise ParseError(f"Expected ',' or '}}', but was {kind!r}")

        kind = next(tokens, _EOF)[0]
        if kind != 'EOF':
            raise ParseError(f'Expected end of properties, but was {kind!r}')

    def _read_value(self, key: str, value: str) -> None:
        try:
            if key == BODY_BASE_KEY:
                self.body_base = value
            elif key == BODY_EXTENSION_KEY:
                self.body_extension = value
            elif key == CONTENT_TYPE_KEY:
                self.content_type = value
            elif key == CHARSET_KEY:
                self.charset = value
            elif key == LAST_MODIFIED_KEY:
                self.last_modified = value
            elif key == ETAG_KEY:
                self.etag = value
            elif key == TIMESTAMP_KEY:
                self.timestamp = parse_timestamp(value)
            else:
                raise ParseError(f'Unrecognised property {key!r}')
        except UsageError as e:
            raise ParseError(f'Invalid value for {key}: {value!r}') from e

    def write(self, stream: IO[bytes]) -> None:
        stream.write(self.dumps().encode('utf-8'))

    def dumps(self) -> str:
        """Serialise in canonical key order, omitting unset values."""
        timestamp = format_timestamp(self.timestamp) if self.timestamp is not None else None
        entries = []
        for key, value in (
            (BODY_BASE_KEY, self.body_base),
            (BODY_EXTENSION_KEY, self.body_extension),
            (CONTENT_TYPE_KEY, self.content_type),
            (CHARSET_KEY, self.charset),
            (LAST_MODIFIED_KEY, self.last_modified),
            (ETAG_KEY, self.etag),
            (TIMESTAMP_KEY, timestamp),
        ):
            if value is None:
                continue
            if key == ETAG_KEY:
                # ETags are usually quoted themselves, and may contain backslashes
                value = value.replace('\\', '\\\\').replace('"', '\\"')
            entries.append(f'  "{key}": "{value}"')
        return '{\n' + ',\n'.join(entries) + '\n}\n'

    def __eq__(self, other):
        if not isinstance(other, CacheProperties):
            return NotImplemented
        return self._fields() == other._fields()

    def _fields(self):
        return (self.body_base, self.body_extension, self.content_type, self.charset,
                self.last_modified, self.etag, self.timestamp)

    def __repr__(self):
        return (f'CacheProperties(body_base={self.body_base!r}, '
                f'body_extension={self.body_extension!r}, '
                f'content_type={self.content_type!r}, charset={self.charset!r}, '
                f'last_modified={self.last_modified!r}, etag={self.etag!r}, '
                f'timestamp={self.timestamp!r})')
