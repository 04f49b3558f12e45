"""
Result of a conditional fetch from an external resource.

A modified result carries a readable byte stream for the new content. A
not-modified result (HTTP 304, or an unchanged file) carries nothing. Either
way the result should be closed, which also releases the transport response
the stream came from.
"""
from typing import IO, Callable, Optional


class FetchResult:
    """Wraps the body stream of a fetch, or the absence of one."""

    def __init__(self, modified: bool, stream: Optional[IO[bytes]] = None,
                 on_close: Optional[Callable[[], None]] = None):
        self.modified = modified
        self.stream = stream
        self._on_close = on_close

    @classmethod
    def for_stream(cls, stream: IO[bytes], on_close: Optional[Callable[[], None]] = None) -> 'FetchResult':
        """New content is available from the stream.

        Args:
            stream: Binary stream, owned by the result until it is closed
            on_close: Optional callback, e.g. to release an HTTP connection
        """
        return cls(True, stream, on_close)

    @classmethod
    def not_modified(cls, on_close: Optional[Callable[[], None]] = None) -> 'FetchResult':
        """The origin confirmed that the cached copy is current."""
        return cls(False, None, on_close)

    def close(self) -> None:
        try:
            if self.stream is not None:
                self.stream.close()
        finally:
            if self._on_close is not None:
                self._on_close()
                self._on_close = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f'FetchResult(modified={self.modified})'
