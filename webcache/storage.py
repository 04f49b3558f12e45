"""
Storage abstraction for cached artifacts.

Every external resource has its own cache directory holding several
artifacts: the properties file, the body, response headers and any copies
made by listeners. Backends store artifacts keyed by (cache_dir, name).
"""
import contextlib
import io
import os
import tempfile
from abc import ABC, abstractmethod
from typing import IO, ContextManager, Iterator, Optional, Union

import boto3
from botocore.exceptions import ClientError

COPY_BUFFER_SIZE = 64 * 1024


class Storage(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def exists(self, cache_dir: str, name: str) -> bool:
        pass

    @abstractmethod
    def size(self, cache_dir: str, name: str) -> int:
        """
        Size of an artifact in bytes.

        Raises:
            FileNotFoundError: If the artifact doesn't exist
        """
        pass

    @abstractmethod
    def open_read(self, cache_dir: str, name: str) -> IO[bytes]:
        """
        Open an artifact for reading. The caller is responsible for closing it.

        Raises:
            FileNotFoundError: If the artifact doesn't exist
        """
        pass

    @abstractmethod
    def open_write(self, cache_dir: str, name: str) -> ContextManager[IO[bytes]]:
        """
        Context manager yielding a binary stream for new artifact content.

        The content replaces any existing artifact only when the block exits
        without an exception. Parent directories are created as needed.
        """
        pass

    def get(self, cache_dir: str, name: str) -> Optional[bytes]:
        """Artifact contents as bytes, or None if the artifact doesn't exist."""
        if not self.exists(cache_dir, name):
            return None
        with self.open_read(cache_dir, name) as f:
            return f.read()

    def put(self, cache_dir: str, name: str, data: bytes) -> None:
        with self.open_write(cache_dir, name) as f:
            f.write(data)


class LocalFileStorage(Storage):
    """
    Local filesystem storage implementation.

    Artifacts live in base_dir/<cache_dir>/<name>. Uses atomic writes (write
    to a temporary file, then rename) so readers never see partial content.
    """

    def __init__(self, base_dir: str):
        self.base_dir = base_dir

        # Create base directory if it doesn't exist
        if not os.path.exists(base_dir):
            os.makedirs(base_dir, exist_ok=True)

    @staticmethod
    def tidy_dir(cache_dir: str) -> str:
        # Some characters cannot appear in local file names.
        return cache_dir.replace('?', '__').replace(':', '')

    def path(self, cache_dir: str, name: str) -> str:
        return os.path.join(self.base_dir, self.tidy_dir(cache_dir), name)

    def exists(self, cache_dir: str, name: str) -> bool:
        return os.path.isfile(self.path(cache_dir, name))

    def size(self, cache_dir: str, name: str) -> int:
        return os.path.getsize(self.path(cache_dir, name))

    def open_read(self, cache_dir: str, name: str) -> IO[bytes]:
        return open(self.path(cache_dir, name), 'rb')

    @contextlib.contextmanager
    def open_write(self, cache_dir: str, name: str) -> Iterator[IO[bytes]]:
        path = self.path(cache_dir, name)
        dirn = os.path.dirname(path)
        os.makedirs(dirn, exist_ok=True)

        # Temporary file in the same directory so that the rename is atomic
        fd, temp_path = tempfile.mkstemp(dir=dirn, prefix='.tmp_', suffix='')

        try:
            with os.fdopen(fd, 'wb') as f:
                yield f

            # Atomic rename (overwrites destination if it exists)
            os.replace(temp_path, path)
        except Exception:
            # Clean up temp file if something went wrong
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise


class S3Storage(Storage):
    """Amazon S3 storage implementation."""

    def __init__(self, bucket_name: str, prefix: str = '', **kwargs):
        """
        Initialize S3 storage.

        Args:
            bucket_name: Name of the S3 bucket
            prefix: Optional prefix (folder) for all keys
            **kwargs: Additional arguments passed to boto3.client()
                     (e.g., aws_access_key_id, aws_secret_access_key, region_name)
        """
        self.bucket_name = bucket_name
        self.prefix = prefix.rstrip('/') + '/' if prefix else ''
        self.s3_client = boto3.client('s3', **kwargs)

    def _get_key(self, cache_dir: str, name: str) -> str:
        """Get the full S3 key for an artifact."""
        return f'{self.prefix}{cache_dir}/{name}'

    def _head(self, cache_dir: str, name: str) -> Optional[dict]:
        key = self._get_key(cache_dir, name)
        try:
            return self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            # HEAD responses have no body, so the code is the bare status
            if e.response['Error']['Code'] in ('404', 'NoSuchKey', 'NotFound'):
                return None
            raise

    def exists(self, cache_dir: str, name: str) -> bool:
        return self._head(cache_dir, name) is not None

    def size(self, cache_dir: str, name: str) -> int:
        head = self._head(cache_dir, name)
        if head is None:
            raise FileNotFoundError(self._get_key(cache_dir, name))
        return head['ContentLength']

    def open_read(self, cache_dir: str, name: str) -> IO[bytes]:
        key = self._get_key(cache_dir, name)

        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response['Error']['Code'] == 'NoSuchKey':
                raise FileNotFoundError(key) from e
            raise
        with contextlib.closing(response['Body']) as body:
            return io.BytesIO(body.read())

    @contextlib.contextmanager
    def open_write(self, cache_dir: str, name: str) -> Iterator[IO[bytes]]:
        """S3 PUT operations are atomic by default, so buffer and PUT on exit."""
        buffer = io.BytesIO()
        yield buffer
        key = self._get_key(cache_dir, name)
        self.s3_client.put_object(Bucket=self.bucket_name, Key=key, Body=buffer.getvalue())


class CacheArtifact:
    """
    One cached artifact of an external resource, bound to its storage.

    Handles are cheap and immutable; CachedResource memoizes them by name.
    """

    def __init__(self, storage: Storage, cache_dir: str, name: str):
        self.storage = storage
        self.cache_dir = cache_dir
        self.name = name

    def exists(self) -> bool:
        return self.storage.exists(self.cache_dir, self.name)

    def size(self) -> int:
        return self.storage.size(self.cache_dir, self.name)

    def open_read(self) -> IO[bytes]:
        return self.storage.open_read(self.cache_dir, self.name)

    def open_write(self) -> ContextManager[IO[bytes]]:
        return self.storage.open_write(self.cache_dir, self.name)

    def read_bytes(self) -> bytes:
        with self.open_read() as f:
            return f.read()

    def set_content(self, content: Union[bytes, str], encoding: str = 'utf-8') -> None:
        if isinstance(content, str):
            content = content.encode(encoding)
        with self.open_write() as f:
            f.write(content)

    def copy_from(self, source: IO[bytes]) -> int:
        """Stream the source into this artifact, returning the byte count."""
        count = 0
        with self.open_write() as f:
            while True:
                chunk = source.read(COPY_BUFFER_SIZE)
                if not chunk:
                    break
                f.write(chunk)
                count += len(chunk)
        return count

    def __repr__(self):
        return f'CacheArtifact(cache_dir={self.cache_dir!r}, name={self.name!r})'
