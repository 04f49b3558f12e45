"""
Local file origins.

Files have no equivalent of 304 Not Modified, so freshness is decided by
comparing the file's modification time with the timestamp recorded when it
was last copied into the cache.
"""
import logging
import os
from datetime import datetime

from dateutil.tz import tzlocal

from webcache.errors import UsageError
from webcache.fetch_result import FetchResult
from webcache.origins import ResourceOrigin

logger = logging.getLogger(__name__)


class FileOrigin(ResourceOrigin):
    """A resource copied from the local filesystem."""

    def __init__(self, path):
        path = os.fspath(path)
        if not os.path.exists(path):
            raise UsageError(f'File does not exist: {path}')
        self.path = path

    @property
    def name(self) -> str:
        return self.path

    @property
    def cache_dir(self) -> str:
        return os.path.basename(self.path)

    def is_expired(self, resource, context) -> bool:
        # Listeners are not consulted, the file's own timestamp decides
        timestamp = resource.properties.timestamp
        if timestamp is None:
            logger.warning('Missing timestamp for %s, so assuming expiry', self.name)
            return True

        # Sub-second precision is not preserved in the properties, so compare whole seconds.
        previous = int(timestamp.timestamp())
        try:
            current = int(os.stat(self.path).st_mtime)
        except FileNotFoundError:
            # The fetch reports the failure
            logger.warning('External file has gone missing %s', self.name)
            return True
        if previous < current:
            logger.info('External file has changed %s', self.name)
            return True
        if previous == current:
            logger.debug('External file is unchanged %s', self.name)
            return False

        logger.warning('External file has unexpected timestamp (earlier than before), '
                       'treating as changed %s', self.name)
        return True

    def fetch(self, resource) -> FetchResult:
        properties = resource.properties

        mtime = os.stat(self.path).st_mtime
        properties.timestamp = datetime.fromtimestamp(mtime, tzlocal())

        # splitext ignores leading dots, so ".profile" has no extension
        extension = os.path.splitext(os.path.basename(self.path))[1]
        if extension:
            properties.body_extension = extension

        return FetchResult.for_stream(open(self.path, 'rb'))

    def __repr__(self):
        return f'FileOrigin({self.path!r})'
