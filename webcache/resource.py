"""
Cached copies of external resources.

CachedResource decides whether the local copy of an external resource can be
used as is, or whether the origin must be asked for a fresh copy. Reads
always come from the local cache; a fetch just refreshes the cache first.

    resource = CachedResource.for_url('https://example.com/data.json')
    resource.add_listener(expiry.daily(6))
    data = json.loads(resource.read_text())

Each resource's cache directory holds properties.json (see
webcache.properties), the body, and any other artifacts written by the
origin or by listeners.
"""
import io
import logging
import threading
from typing import IO, Dict, Iterable, List, Optional, TextIO

from webcache import config
from webcache.errors import FetchError, UsageError
from webcache.expiry import ExpiryContext
from webcache.file_origin import FileOrigin
from webcache.listeners import ResourceListener
from webcache.origins import ResourceOrigin
from webcache.properties import CacheProperties
from webcache.storage import CacheArtifact, LocalFileStorage, Storage
from webcache.web_origin import WebOrigin

logger = logging.getLogger(__name__)

# Contains charset, content type and timestamp
PROPERTIES_FILE = 'properties.json'

CONTENT_TYPE_JSON = 'application/json'
CONTENT_TYPE_OCTET_STREAM = 'application/octet-stream'


class CachedResource:
    """
    A read-only external resource with a local cache.

    Not safe for concurrent reads of the same instance from several threads;
    the in-progress flag only guards against re-entrant reads from listeners.
    """

    def __init__(self, origin: ResourceOrigin, storage: Optional[Storage] = None,
                 listeners: Iterable[ResourceListener] = ()):
        """
        Args:
            origin: Where the data comes from
            storage: Where cached artifacts are kept, defaults to local files
                     under config.default_cache_dir()
            listeners: Initial listeners, see add_listener()
        """
        self.origin = origin
        self.storage = storage if storage is not None else LocalFileStorage(config.default_cache_dir())

        # Mutable, callers may add, remove or reorder listeners.
        self.listeners: List[ResourceListener] = list(listeners)

        self._properties: Optional[CacheProperties] = None
        self._fetching = False
        self._artifacts: Dict[str, CacheArtifact] = {}
        self._artifacts_lock = threading.Lock()

    @classmethod
    def for_url(cls, url: str, storage: Optional[Storage] = None,
                listeners: Iterable[ResourceListener] = (), **kwargs) -> 'CachedResource':
        """Cached web resource. Extra arguments are passed to WebOrigin."""
        return cls(WebOrigin(url, **kwargs), storage, listeners)

    @classmethod
    def for_file(cls, path, storage: Optional[Storage] = None,
                 listeners: Iterable[ResourceListener] = ()) -> 'CachedResource':
        return cls(FileOrigin(path), storage, listeners)

    @property
    def name(self) -> str:
        return self.origin.name

    def add_listener(self, listener: ResourceListener) -> 'CachedResource':
        self.listeners.append(listener)
        return self

    def add_listeners(self, *listeners: ResourceListener) -> 'CachedResource':
        self.listeners.extend(listeners)
        return self

    @property
    def properties(self) -> CacheProperties:
        if self._properties is None:
            artifact = self.artifact(PROPERTIES_FILE)
            if artifact.exists():
                with artifact.open_read() as f:
                    self._properties = CacheProperties.load(f)
                logger.debug('Read properties for %s: %s', self.name, self._properties)
            else:
                self._properties = CacheProperties.new_with_defaults()
                logger.debug('Created properties for %s: %s', self.name, self._properties)
        return self._properties

    @property
    def charset(self) -> Optional[str]:
        return self.properties.charset

    def artifact(self, name: str) -> CacheArtifact:
        """Handle for one of this resource's cached artifacts."""
        artifact = self._artifacts.get(name)
        if artifact is None:
            with self._artifacts_lock:
                artifact = self._artifacts.get(name)
                if artifact is None:
                    artifact = CacheArtifact(self.storage, self.origin.cache_dir, name)
                    self._artifacts[name] = artifact
        return artifact

    def body_artifact(self) -> CacheArtifact:
        return self.artifact(self.properties.body_name())

    def has_properties(self) -> bool:
        return self.artifact(PROPERTIES_FILE).exists()

    def is_fetch_required(self, context: Optional[ExpiryContext] = None) -> bool:
        if self._fetching:
            # Happens with post-save hooks that read the body, such as PrettyPrintJsonListener
            logger.debug('Fetch not required, fetch is in progress (likely caused by a post-save hook) %s',
                         self.name)
            return False

        if not self.has_properties():
            logger.info('Fetch required due to no existing properties %s', self.name)
            return True

        if not self.body_artifact().exists():
            logger.info('Fetch required due to missing (deleted?) body file %s', self.name)
            # Most likely the body was deleted by hand to force a download. A
            # conditional request could get a 304 for content we no longer have.
            self.properties.last_modified = None
            self.properties.etag = None
            return True

        return self.origin.is_expired(self, context or ExpiryContext.current())

    def open_stream(self, context: Optional[ExpiryContext] = None) -> IO[bytes]:
        """
        Open the cached body for reading, refreshing the cache first if needed.

        The caller is responsible for closing the stream.

        Args:
            context: Shared "now" for expiry checks; pass the same context
                     to related resources so they are refreshed together

        Raises:
            FetchError: If an I/O error occurred while fetching
            ProtocolError: If a web server returned an unexpected status
            ParseError: If cached properties or response headers are malformed
        """
        if self.is_fetch_required(context):
            self._fetch()

        return self.body_artifact().open_read()

    def read_bytes(self, context: Optional[ExpiryContext] = None) -> bytes:
        with self.open_stream(context) as f:
            return f.read()

    def open_text(self, encoding: Optional[str] = None,
                  context: Optional[ExpiryContext] = None) -> TextIO:
        """
        Open the cached body as text.

        Args:
            encoding: Overrides the charset from the response headers. Required
                      if the charset is unknown; it is never guessed.
        """
        stream = self.open_stream(context)
        encoding = encoding or self.charset
        if encoding is None:
            stream.close()
            raise UsageError(f'Charset unknown for {self.name}. Specify an encoding.')
        return io.TextIOWrapper(stream, encoding=encoding)

    def read_text(self, encoding: Optional[str] = None,
                  context: Optional[ExpiryContext] = None) -> str:
        with self.open_text(encoding, context) as f:
            return f.read()

    def _fetch(self) -> None:
        self._fetching = True
        try:
            with self.origin.fetch(self) as result:
                modified = result.modified
                if modified:
                    # The origin may have set these explicitly, but if not they can be inferred.
                    self._infer_properties()

                    # Pre-save hooks may change the body name, so get the artifact afterwards
                    for listener in self.listeners:
                        listener.pre_save_body(self)

                    count = self.body_artifact().copy_from(result.stream)

            if modified:
                # Hooks could also modify properties, so run them before writing properties
                for listener in self.listeners:
                    listener.post_save_body(self)
                logger.info('Fetched %d bytes from %s', count, self.name)
            else:
                logger.info('Confirmed that existing local cache already matches server data for %s',
                            self.name)

            # Written even if the content was not modified, because the timestamp has moved on
            self._write_properties()
        except OSError as e:
            self._properties = None
            raise FetchError(f'Failed to fetch {self.name}: {e}') from e
        except Exception:
            # Half updated properties are discarded and reloaded from the cache
            self._properties = None
            raise
        finally:
            self._fetching = False

    def _infer_properties(self) -> None:
        properties = self.properties
        if properties.body_extension is None and properties.content_type:
            # "application/json" -> ".json"
            properties.body_extension = '.' + properties.content_type.split('/', 1)[-1]
        if properties.content_type is None:
            if properties.body_extension == '.json':
                properties.content_type = CONTENT_TYPE_JSON
            else:
                properties.content_type = CONTENT_TYPE_OCTET_STREAM

    def _write_properties(self) -> None:
        with self.artifact(PROPERTIES_FILE).open_write() as f:
            self.properties.write(f)

    def __repr__(self):
        return f'CachedResource({self.origin!r})'
